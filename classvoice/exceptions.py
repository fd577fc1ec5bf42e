"""Exception hierarchy for classvoice."""


class ClassvoiceError(Exception):
    """Base exception for classvoice errors."""

    pass


class ConfigurationError(ClassvoiceError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class EngineError(ClassvoiceError):
    """Raised when a speech engine cannot be started or driven."""

    pass


class SinkDeliveryError(ClassvoiceError):
    """Raised when a transcript chunk could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SessionRejectedError(SinkDeliveryError):
    """Raised when the ingestion service rejects the credentials or session."""

    pass
