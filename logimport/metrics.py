"""Metrics collector: thread-safe counters and latency percentiles for one import."""

import threading
import time


class ImportMetrics:
    """Collects counters about chunk ingestion during one import attempt."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chunks_ingested: int = 0
        self._lines_ingested: int = 0
        self._lines_rejected: int = 0
        self._chunk_sizes: list[int] = []
        self._ingest_times: list[float] = []
        self._failures: int = 0
        self._start_time = time.monotonic()

    def record_chunk(self, lines: int, ingest_time_ms: float, rejected: int = 0) -> None:
        """Record one successful ingest call.

        Args:
            lines: Number of lines sent in the chunk.
            ingest_time_ms: Round-trip time of the ingest call, in milliseconds.
            rejected: Lines the backend reported as failed to parse.
        """
        with self._lock:
            self._chunks_ingested += 1
            self._lines_ingested += lines
            self._lines_rejected += rejected
            self._chunk_sizes.append(lines)
            self._ingest_times.append(ingest_time_ms)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all collected metrics."""
        with self._lock:
            chunk_sizes = list(self._chunk_sizes)
            ingest_times = list(self._ingest_times)

            avg_chunk = sum(chunk_sizes) / len(chunk_sizes) if chunk_sizes else 0.0
            avg_ingest = sum(ingest_times) / len(ingest_times) if ingest_times else 0.0

            return {
                "chunks_ingested": self._chunks_ingested,
                "lines_ingested": self._lines_ingested,
                "lines_rejected": self._lines_rejected,
                "failures": self._failures,
                "avg_chunk_size": avg_chunk,
                "avg_ingest_time_ms": avg_ingest,
                "p95_ingest_time_ms": self._percentile(ingest_times, 95),
                "elapsed_seconds": time.monotonic() - self._start_time,
            }

    @staticmethod
    def _percentile(data: list, pct: float) -> float:
        """Interpolated percentile of a list of numbers, 0.0 when empty."""
        if not data:
            return 0.0

        sorted_data = sorted(data)
        n = len(sorted_data)

        if n == 1:
            return float(sorted_data[0])

        idx = (pct / 100) * (n - 1)
        lower = int(idx)
        upper = lower + 1
        fraction = idx - lower

        if upper >= n:
            return float(sorted_data[-1])

        return float(sorted_data[lower] + fraction * (sorted_data[upper] - sorted_data[lower]))
