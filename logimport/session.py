"""Three-phase ingest session: start, ingest (sequential), end (exactly once)."""

import logging
import threading

from logimport.api_client import BackendClient
from logimport.errors import ApiError, ChunkIngestError, SessionStartError
from logimport.models import IngestReceipt, SessionOptions, SessionStatus

logger = logging.getLogger(__name__)


class ImportSession:
    """One server-side ingest session.

    Only the pump holds this object; the session id is the capability that
    lets chunks reach the backend. ``ingest`` refuses overlapping calls since
    the backend relies on in-order delivery.
    """

    def __init__(self, client: BackendClient, options: SessionOptions):
        self._client = client
        self._options = options
        self._session_id: str | None = None
        self._status = SessionStatus.UNSTARTED
        self._ingest_lock = threading.Lock()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def options(self) -> SessionOptions:
        return self._options

    def start(self) -> str:
        if self._status is not SessionStatus.UNSTARTED:
            raise RuntimeError(f"Session already {self._status.value}")
        try:
            session_id = self._client.ingest_start(self._options)
        except ApiError as exc:
            logger.error("Backend rejected ingest session: %s", exc)
            raise SessionStartError(f"Failed to start ingestion session: {exc}") from exc
        self._session_id = session_id
        self._status = SessionStatus.ACTIVE
        logger.info("Started ingest session %s (source=%s)", session_id, self._options.source)
        return session_id

    def ingest(self, chunk_index: int, lines) -> IngestReceipt:
        """Send one chunk. Raises ChunkIngestError on any failure, without retrying."""
        if self._status is not SessionStatus.ACTIVE:
            raise RuntimeError(f"Cannot ingest into a session that is {self._status.value}")
        if not self._ingest_lock.acquire(blocking=False):
            raise RuntimeError("Concurrent ingest on one session is not allowed")
        try:
            data = self._client.ingest_logs(self._session_id, list(lines))
        except ApiError as exc:
            raise ChunkIngestError(chunk_index, str(exc)) from exc
        finally:
            self._ingest_lock.release()

        receipt = IngestReceipt(
            processed=int(data.get("processed") or 0),
            failed=int(data.get("failed") or 0),
        )
        if receipt.failed:
            logger.warning(
                "Chunk %d: backend could not parse %d of %d line(s)",
                chunk_index, receipt.failed, len(lines),
            )
        return receipt

    def end(self, raise_errors: bool = True) -> bool:
        """Release the server-side session. Only the first call reaches the backend.

        With raise_errors=False a failure is logged and False is returned, which
        is how cleanup on an error path behaves.
        """
        if self._status is SessionStatus.UNSTARTED:
            raise RuntimeError("Cannot end a session that was never started")
        if self._status is SessionStatus.ENDED:
            logger.warning("Session %s already ended, ignoring extra end", self._session_id)
            return True

        self._status = SessionStatus.ENDED
        try:
            self._client.ingest_end(self._session_id)
        except ApiError as exc:
            if raise_errors:
                raise
            logger.warning("Failed to end ingestion session %s: %s", self._session_id, exc)
            return False
        logger.info("Ended ingest session %s", self._session_id)
        return True
