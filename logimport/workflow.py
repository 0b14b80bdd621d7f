"""Import workflow: preview, detect, confirm, pump."""

import logging
import threading
from typing import Callable

from logimport.api_client import BackendClient
from logimport.config import ImportConfig
from logimport.detector import PatternDetector
from logimport.errors import ApiError
from logimport.models import DetectionResult, ImportResult, Pattern, PreviewSample, SessionOptions
from logimport.providers import SourceProvider
from logimport.pump import ChunkPump, LoggingObserver
from logimport.session import ImportSession

logger = logging.getLogger(__name__)

# Receives the detection result, returns the pattern to import with or None to abort.
ConfirmCallback = Callable[[PreviewSample, DetectionResult], Pattern | None]


class ImportWorkflow:
    def __init__(self, client: BackendClient, config: ImportConfig,
                 cancel_event: threading.Event | None = None,
                 observers: list | None = None):
        self._client = client
        self._config = config
        self._cancel = cancel_event or threading.Event()
        self._observers = observers if observers is not None else [LoggingObserver()]

    def known_patterns(self) -> list[Pattern]:
        try:
            return self._client.list_patterns()
        except ApiError as exc:
            logger.warning("Could not load saved patterns: %s", exc)
            return []

    def detect(self, provider: SourceProvider) -> tuple[PreviewSample, DetectionResult]:
        sample = provider.preview()
        detector = PatternDetector(self._client, self.known_patterns())
        return sample, detector.detect(sample)

    def session_options(self, provider: SourceProvider, pattern: Pattern) -> SessionOptions:
        return SessionOptions.for_pattern(
            pattern,
            provider.source_name,
            smart_decoder=self._config.smart_decoder,
            force_timezone=self._config.force_timezone,
            force_start_year=self._config.force_start_year,
            force_start_month=self._config.force_start_month,
            force_start_day=self._config.force_start_day,
            meta=provider.metadata(),
        )

    def run_import(self, provider: SourceProvider, pattern: Pattern) -> ImportResult:
        session = ImportSession(self._client, self.session_options(provider, pattern))
        pump = ChunkPump(
            session,
            chunk_size=self._config.chunk_size,
            observers=self._observers,
            cancel_event=self._cancel,
        )
        return pump.run(provider)

    def run(self, provider: SourceProvider, confirm: ConfirmCallback) -> ImportResult | None:
        """Detect a pattern, let the caller confirm it, then import.

        Returns None when the caller declines the pattern.
        """
        sample, detection = self.detect(provider)
        pattern = confirm(sample, detection)
        if pattern is None:
            logger.info("Import of %s declined", provider.source_name)
            return None
        return self.run_import(provider, pattern)
