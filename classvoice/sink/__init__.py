"""Delivery of finished transcript chunks to the ingestion service."""

from .ingestion import IngestionClient
from .sink import TranscriptSink

__all__ = ["IngestionClient", "TranscriptSink"]
