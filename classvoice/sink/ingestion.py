"""HTTP client for the transcript ingestion service."""

import logging
from typing import Optional

import requests

from ..capture.buffer import ChunkEvent
from ..config import IngestionConfig
from ..exceptions import SessionRejectedError, SinkDeliveryError

logger = logging.getLogger(__name__)

# Statuses meaning the credentials or the session itself are no longer valid.
SESSION_REJECTED_STATUSES = frozenset({401, 403, 404, 410})


class IngestionClient:
    """Posts transcript chunks to the ingestion service."""

    def __init__(self, config: IngestionConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.url = config.base_url.rstrip("/") + "/" + config.endpoint.lstrip("/")
        self.timeout = config.timeout_s
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if config.auth_token:
            self._session.headers["Authorization"] = f"Bearer {config.auth_token}"

    def send(self, chunk: ChunkEvent) -> dict:
        """Deliver one chunk.

        Returns:
            The decoded JSON response body (empty dict if there is none)

        Raises:
            SessionRejectedError: the service refused the credentials or session
            SinkDeliveryError: any other transport or server failure
        """
        try:
            response = self._session.post(
                self.url,
                json=chunk.to_payload(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise SinkDeliveryError(f"Request to {self.url} failed: {e}") from e

        if response.status_code in SESSION_REJECTED_STATUSES:
            raise SessionRejectedError(
                f"Ingestion rejected session {chunk.session_id} "
                f"(HTTP {response.status_code})",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise SinkDeliveryError(
                f"Ingestion failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            f"Delivered chunk {chunk.chunk_index} for session {chunk.session_id}"
        )
        try:
            return response.json()
        except ValueError:
            return {}

    def close(self) -> None:
        self._session.close()
