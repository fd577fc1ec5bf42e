"""classvoice - continuous classroom voice capture."""

__version__ = "0.1.0"
