"""Source providers: the File and CloudWatch variants of the import source.

Each provider exposes ``preview()`` for a bounded head sample and
``import_all(chunk_size)``, a generator that produces the whole source as
ordered chunks. A chunk is only produced when the consumer asks for it, so the
consumer can hold back production until the previous chunk is ingested.
"""

import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from functools import partial
from typing import Iterator

from logimport.api_client import BackendClient
from logimport.content import decode_text, split_lines, split_prefix
from logimport.errors import SourceReadError
from logimport.models import Chunk, PreviewSample
from logimport.pager import RemotePager

logger = logging.getLogger(__name__)

PREVIEW_LINE_LIMIT = 100
PREVIEW_BYTE_LIMIT = 10 * 1024


class SourceProvider(ABC):
    name = "source"

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Label sent to the backend as the session source."""

    def metadata(self) -> dict:
        return {}

    @abstractmethod
    def preview(self) -> PreviewSample:
        """Return up to PREVIEW_LINE_LIMIT lines from the head of the source."""

    @abstractmethod
    def import_all(self, chunk_size: int) -> Iterator[Chunk]:
        """Yield the entire source as ordered, non-empty chunks."""


def _check_chunk_size(chunk_size: int):
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")


class FileProvider(SourceProvider):
    name = "File"

    def __init__(self, path: str, preview_bytes: int = PREVIEW_BYTE_LIMIT,
                 preview_lines: int = PREVIEW_LINE_LIMIT):
        if not 1 <= preview_lines <= PREVIEW_LINE_LIMIT:
            raise ValueError(f"preview_lines must be between 1 and {PREVIEW_LINE_LIMIT}")
        if not 1 <= preview_bytes <= PREVIEW_BYTE_LIMIT:
            raise ValueError(f"preview_bytes must be between 1 and {PREVIEW_BYTE_LIMIT}")
        self._path = path
        self._preview_bytes = preview_bytes
        self._preview_lines = preview_lines

    @property
    def path(self) -> str:
        return self._path

    @property
    def source_name(self) -> str:
        return os.path.basename(self._path)

    def _open(self):
        try:
            return open(self._path, "rb")
        except OSError as exc:
            raise SourceReadError(f"Cannot read {self._path}: {exc}") from exc

    def preview(self) -> PreviewSample:
        with self._open() as f:
            data = f.read(self._preview_bytes + 1)
        truncated = len(data) > self._preview_bytes
        data = data[: self._preview_bytes]
        if not data:
            raise SourceReadError(f"{self.source_name} is empty")

        text = decode_text(data, self.source_name, final=not truncated)
        lines = split_prefix(text, truncated)[: self._preview_lines]
        if not lines:
            raise SourceReadError(f"{self.source_name} contains no log lines")
        logger.info("Previewed %d line(s) from %s", len(lines), self._path)
        return PreviewSample(lines=tuple(lines), source_name=self.source_name)

    def read_lines(self) -> list[str]:
        """Read and validate the full file content, returning its non-blank lines."""
        with self._open() as f:
            data = f.read()
        if not data:
            raise SourceReadError(f"{self.source_name} is empty")
        lines = split_lines(decode_text(data, self.source_name))
        if not lines:
            raise SourceReadError(f"{self.source_name} contains no log lines")
        return lines

    def import_all(self, chunk_size: int) -> Iterator[Chunk]:
        _check_chunk_size(chunk_size)
        # Validation happens before the first chunk is handed out.
        lines = self.read_lines()
        return self._slices(lines, chunk_size)

    @staticmethod
    def _slices(lines: list[str], chunk_size: int) -> Iterator[Chunk]:
        total = len(lines)
        for index, offset in enumerate(range(0, total, chunk_size)):
            part = lines[offset: offset + chunk_size]
            yield Chunk(
                index=index,
                lines=tuple(part),
                offset=offset,
                total_estimate=total,
                final=offset + len(part) >= total,
            )


_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9]")


class CloudWatchProvider(SourceProvider):
    name = "CloudWatch"

    def __init__(
        self,
        client: BackendClient,
        group: str,
        stream: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        region: str = "us-east-1",
        profile: str = "default",
        page_limit: int = 10000,
        page_delay: float = 0.1,
        empty_page_delay: float = 1.0,
        cancel_event: threading.Event | None = None,
    ):
        self._client = client
        self._group = group
        self._stream = stream
        self._start_time = start_time
        self._end_time = end_time
        self._region = region
        self._profile = profile
        self._page_limit = page_limit
        self._page_delay = page_delay
        self._empty_page_delay = empty_page_delay
        self._cancel = cancel_event

    @property
    def source_name(self) -> str:
        group = _UNSAFE_NAME_RE.sub("-", self._group)
        stream = _UNSAFE_NAME_RE.sub("-", self._stream)
        return f"cw-{group}-{stream}"

    def metadata(self) -> dict:
        return {
            "_aws_region": self._region,
            "_aws_profile": self._profile,
            "_log_group_name": self._group,
            "_log_stream_name": self._stream,
            "_src": f"cloudwatch.{self._group}.{self._stream}",
        }

    def _fetch(self, page_index: int, token: str | None, limit: int):
        return self._client.fetch_event_page(
            page_index,
            self._region,
            self._profile,
            self._group,
            self._stream,
            self._start_time,
            self._end_time,
            token,
            limit,
        )

    def preview(self) -> PreviewSample:
        # One small request; the stream is never walked to build a preview.
        page = self._fetch(0, None, PREVIEW_LINE_LIMIT)
        lines = [line for line in page.items if line.strip()][:PREVIEW_LINE_LIMIT]
        if not lines:
            raise SourceReadError(
                f"No logs were retrieved from {self._group}/{self._stream}"
            )
        logger.info("Previewed %d event(s) from %s/%s", len(lines), self._group, self._stream)
        return PreviewSample(lines=tuple(lines), source_name=self.source_name)

    def pager(self) -> RemotePager:
        return RemotePager(
            partial(self._fetch, limit=self._page_limit),
            page_delay=self._page_delay,
            empty_page_delay=self._empty_page_delay,
            cancel_event=self._cancel,
        )

    def import_all(self, chunk_size: int) -> Iterator[Chunk]:
        # The remote page size bounds each chunk; chunk_size only validates the call.
        _check_chunk_size(chunk_size)
        return self._chunks(self.pager())

    @staticmethod
    def _chunks(pager: RemotePager) -> Iterator[Chunk]:
        delivered = 0
        index = 0
        for page in pager.pages():
            if not page.items:
                continue
            yield Chunk(
                index=index,
                lines=tuple(page.items),
                offset=delivered,
                total_estimate=delivered + len(page.items),
                final=not page.has_more,
            )
            delivered += len(page.items)
            index += 1
