"""Exception taxonomy for the import pipeline."""


class ImportPipelineError(Exception):
    """Base class for every error raised by the import pipeline."""


class ApiError(ImportPipelineError):
    """The backend answered with an error, or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SourceReadError(ImportPipelineError):
    """Source is unreadable, empty, or does not look like text."""


class PatternDetectionError(ImportPipelineError):
    """Suggestion or parse call failed during detection."""


class SessionStartError(ImportPipelineError):
    """Backend refused to open an ingest session."""


class ChunkIngestError(ImportPipelineError):
    def __init__(self, chunk_index: int, reason: str = ""):
        message = f"chunk {chunk_index} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.chunk_index = chunk_index
        self.reason = reason


class PageFetchError(ImportPipelineError):
    def __init__(self, page_index: int, reason: str = ""):
        message = f"Failed to fetch log batch {page_index}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.page_index = page_index
        self.reason = reason


class StreamDiscoveryError(ImportPipelineError):
    def __init__(self, group_name: str, reason: str = ""):
        super().__init__(f"Failed to fetch streams for {group_name}: {reason}")
        self.group_name = group_name
        self.reason = reason
