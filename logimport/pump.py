"""Chunk pump: streams a provider's chunks through one ingest session."""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from logimport.errors import ChunkIngestError, ImportPipelineError, PageFetchError
from logimport.metrics import ImportMetrics
from logimport.models import Chunk, ImportResult, ImportStatus, ProgressState
from logimport.providers import SourceProvider
from logimport.session import ImportSession

logger = logging.getLogger(__name__)


@runtime_checkable
class ImportObserver(Protocol):
    def on_started(self, session_id: str) -> None: ...

    def on_progress(self, progress: ProgressState) -> None: ...

    def on_chunk_failed(self, chunk_index: int, error: str) -> None: ...

    def on_finished(self, result: ImportResult) -> None: ...


class LoggingObserver:
    def on_started(self, session_id: str) -> None:
        logger.info("Import started (session %s)", session_id)

    def on_progress(self, progress: ProgressState) -> None:
        logger.info(
            "Progress: %d%% (%d/%d lines)",
            progress.percent, progress.processed_lines, progress.total_lines_estimate,
        )

    def on_chunk_failed(self, chunk_index: int, error: str) -> None:
        logger.error("Chunk %d failed: %s", chunk_index, error)

    def on_finished(self, result: ImportResult) -> None:
        logger.info(
            "Import %s: %d line(s) in %d chunk(s)",
            result.status.value, result.handled_lines, result.chunks_ingested,
        )


@dataclass
class ImportContext:
    """Everything one import attempt knows; nothing outlives the attempt."""

    session: ImportSession
    handled_lines: int = 0
    total_estimate: int = 0
    percent: int = 0
    chunks_ingested: int = 0
    metrics: ImportMetrics = field(default_factory=ImportMetrics)

    @property
    def progress(self) -> ProgressState:
        return ProgressState(self.handled_lines, self.total_estimate, self.percent)

    def advance(self, chunk: Chunk) -> ProgressState:
        """Account for a successfully ingested chunk and return the new progress."""
        self.handled_lines += len(chunk.lines)
        self.chunks_ingested += 1
        self.total_estimate = max(self.total_estimate, chunk.total_estimate, self.handled_lines)

        percent = math.ceil(self.handled_lines / self.total_estimate * 100)
        if not chunk.final:
            percent = min(percent, 99)
        self.percent = max(self.percent, percent)
        return self.progress

    def complete(self) -> ProgressState:
        self.total_estimate = max(self.total_estimate, self.handled_lines)
        self.percent = 100
        return self.progress


class ChunkPump:
    """Pulls chunks from a provider and pushes them, in order, through a session.

    The provider's iterator is only advanced after the previous chunk's ingest
    call returned, so at most one chunk is in flight. ``end`` is called exactly
    once for every session that started, whatever happens afterwards.
    """

    def __init__(
        self,
        session: ImportSession,
        chunk_size: int = 1000,
        observers: list | None = None,
        cancel_event: threading.Event | None = None,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._session = session
        self._chunk_size = chunk_size
        self._observers = list(observers or [])
        self._cancel = cancel_event or threading.Event()

    def add_observer(self, observer: ImportObserver):
        self._observers.append(observer)

    def _notify(self, event: str, *args):
        for observer in self._observers:
            getattr(observer, event)(*args)

    def run(self, provider: SourceProvider) -> ImportResult:
        """Run one import attempt.

        SourceReadError and SessionStartError propagate: nothing was sent.
        Any later failure is captured in the returned ImportResult after the
        session is ended.
        """
        # Content validation runs here, before the backend sees anything.
        chunks = iter(provider.import_all(self._chunk_size))
        if self._cancel.is_set():
            self._close(chunks)
            logger.warning("Import cancelled before the session started")
            result = ImportResult(session_id=None, status=ImportStatus.CANCELLED)
            self._notify("on_finished", result)
            return result
        try:
            session_id = self._session.start()
        except Exception:
            self._close(chunks)
            raise
        ctx = ImportContext(session=self._session)
        self._notify("on_started", session_id)

        status = ImportStatus.COMPLETED
        error = None
        failed_chunk = None
        failed_page = None

        try:
            status = self._pump(chunks, ctx)
        except ChunkIngestError as exc:
            status, error, failed_chunk = ImportStatus.FAILED, str(exc), exc.chunk_index
            ctx.metrics.record_failure()
            self._notify("on_chunk_failed", exc.chunk_index, str(exc))
        except PageFetchError as exc:
            status, error, failed_page = ImportStatus.FAILED, str(exc), exc.page_index
            ctx.metrics.record_failure()
            logger.error("Import aborted while paging: %s", exc)
        except ImportPipelineError as exc:
            status, error = ImportStatus.FAILED, str(exc)
            ctx.metrics.record_failure()
            logger.error("Import aborted: %s", exc)
        finally:
            ended = self._session.end(raise_errors=False)

        if status is ImportStatus.COMPLETED and not ended:
            status, error = ImportStatus.FAILED, "Failed to end ingestion session"

        if status is ImportStatus.COMPLETED and ctx.handled_lines == 0:
            error = f"No logs were retrieved from {provider.source_name}"
            logger.warning("%s", error)

        if status is ImportStatus.COMPLETED and ctx.percent < 100:
            # Source ended without flagging a final chunk (e.g. trailing empty page).
            self._notify("on_progress", ctx.complete())

        result = ImportResult(
            session_id=session_id,
            status=status,
            handled_lines=ctx.handled_lines,
            chunks_ingested=ctx.chunks_ingested,
            progress=ctx.progress,
            error=error,
            failed_chunk_index=failed_chunk,
            failed_page_index=failed_page,
            metrics=ctx.metrics.snapshot(),
        )
        self._notify("on_finished", result)
        return result

    @staticmethod
    def _close(chunks):
        close = getattr(chunks, "close", None)
        if close is not None:
            close()

    def _pump(self, chunks, ctx: ImportContext) -> ImportStatus:
        try:
            while True:
                if self._cancel.is_set():
                    logger.warning("Import cancelled after %d chunk(s)", ctx.chunks_ingested)
                    return ImportStatus.CANCELLED
                chunk = next(chunks, None)
                if chunk is None:
                    if self._cancel.is_set():
                        return ImportStatus.CANCELLED
                    return ImportStatus.COMPLETED
                self._ingest(chunk, ctx)
        finally:
            self._close(chunks)

    def _ingest(self, chunk: Chunk, ctx: ImportContext):
        t0 = time.monotonic()
        receipt = self._session.ingest(chunk.index, chunk.lines)
        elapsed_ms = (time.monotonic() - t0) * 1000

        ctx.metrics.record_chunk(len(chunk.lines), elapsed_ms, rejected=receipt.failed)
        progress = ctx.advance(chunk)
        logger.debug(
            "Ingested chunk %d (%d lines) in %.1f ms", chunk.index, len(chunk.lines), elapsed_ms
        )
        self._notify("on_progress", progress)
