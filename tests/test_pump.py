"""Tests for the ChunkPump orchestrator."""

import random
import threading

import pytest

from logimport.errors import (
    ApiError, PageFetchError, SessionStartError, SourceReadError,
)
from logimport.models import Chunk, ImportStatus, SessionOptions
from logimport.providers import FileProvider, SourceProvider
from logimport.pump import ChunkPump, ImportContext, ImportObserver, LoggingObserver
from logimport.session import ImportSession


class RecordingClient:
    """Stands in for BackendClient's ingest routes and records the call order."""

    def __init__(self, fail_ingest_at=None, reject_start=False, fail_end=False):
        self.calls = []
        self.ingested = []
        self.fail_ingest_at = fail_ingest_at
        self.reject_start = reject_start
        self.fail_end = fail_end
        self.in_flight = 0
        self.max_in_flight = 0

    def ingest_start(self, options):
        self.calls.append("start")
        if self.reject_start:
            raise ApiError("Invalid grok pattern", status_code=400)
        return "session-1"

    def ingest_logs(self, session_id, lines):
        self.calls.append("logs")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fail_ingest_at is not None and len(self.ingested) == self.fail_ingest_at:
                raise ApiError("storage unavailable", status_code=500)
            self.ingested.append(list(lines))
            return {"status": "success", "processed": len(lines), "failed": 0}
        finally:
            self.in_flight -= 1

    def ingest_end(self, session_id):
        self.calls.append("end")
        if self.fail_end:
            raise ApiError("end failed", status_code=500)
        return {"status": "success"}


class ListProvider(SourceProvider):
    """Replays prepared chunk sizes and records when each chunk is produced."""

    name = "List"

    def __init__(self, sizes, client=None, fail_after=None, final_flags=True):
        self._sizes = list(sizes)
        self._client = client
        self._fail_after = fail_after
        self._final_flags = final_flags
        self.produced = []

    @property
    def source_name(self):
        return "list"

    def preview(self):
        raise NotImplementedError

    def import_all(self, chunk_size):
        return self._generate()

    def _generate(self):
        offset = 0
        total = sum(self._sizes)
        for index, size in enumerate(self._sizes):
            if self._fail_after is not None and index == self._fail_after:
                raise PageFetchError(index, "connection reset")
            if self._client is not None:
                # Nothing may be produced while an ingest is running.
                assert self._client.in_flight == 0
            lines = tuple(f"line {offset + i}" for i in range(size))
            self.produced.append(index)
            yield Chunk(
                index=index,
                lines=lines,
                offset=offset,
                total_estimate=total,
                final=self._final_flags and index == len(self._sizes) - 1,
            )
            offset += size


class ProgressRecorder:
    def __init__(self):
        self.started = []
        self.progress = []
        self.failures = []
        self.finished = []

    def on_started(self, session_id):
        self.started.append(session_id)

    def on_progress(self, progress):
        self.progress.append(progress)

    def on_chunk_failed(self, chunk_index, error):
        self.failures.append((chunk_index, error))

    def on_finished(self, result):
        self.finished.append(result)


def _make_pump(client, chunk_size=100, **kwargs):
    session = ImportSession(client, SessionOptions(pattern="%{GREEDYDATA:message}", source="test"))
    recorder = ProgressRecorder()
    pump = ChunkPump(session, chunk_size=chunk_size, observers=[recorder], **kwargs)
    return pump, session, recorder


def _write_lines(path, count):
    path.write_text("".join(f"2024-01-15 08:23:45 INFO line {i}\n" for i in range(count)))
    return str(path)


class TestFileImport:
    def test_250_lines_in_three_chunks(self, tmp_path):
        client = RecordingClient()
        pump, _, recorder = _make_pump(client, chunk_size=100)

        result = pump.run(FileProvider(_write_lines(tmp_path / "app.log", 250)))

        assert [len(c) for c in client.ingested] == [100, 100, 50]
        assert client.calls.count("end") == 1
        assert [p.percent for p in recorder.progress] == [40, 80, 100]
        assert result.status is ImportStatus.COMPLETED
        assert result.handled_lines == 250
        assert result.chunks_ingested == 3

    def test_call_order_start_logs_end(self, tmp_path):
        client = RecordingClient()
        pump, _, _ = _make_pump(client, chunk_size=100)
        pump.run(FileProvider(_write_lines(tmp_path / "app.log", 150)))
        assert client.calls == ["start", "logs", "logs", "end"]

    def test_binary_file_rejected_before_start(self, tmp_path):
        path = tmp_path / "blob.bin"
        path.write_bytes(b"\x00\x01\x02" * 100)
        client = RecordingClient()
        pump, _, _ = _make_pump(client)

        with pytest.raises(SourceReadError):
            pump.run(FileProvider(str(path)))
        assert client.calls == []


class TestIngestFailure:
    def test_failure_at_chunk_2_of_5(self):
        client = RecordingClient(fail_ingest_at=2)
        provider = ListProvider([10, 10, 10, 10, 10], client)
        pump, _, recorder = _make_pump(client)

        result = pump.run(provider)

        assert result.status is ImportStatus.FAILED
        assert result.error.startswith("chunk 2 failed")
        assert result.failed_chunk_index == 2
        assert result.handled_lines == 20
        assert client.calls.count("logs") == 3
        assert client.calls[-1] == "end"
        assert client.calls.count("end") == 1
        # chunks 3 and 4 were never produced
        assert provider.produced == [0, 1, 2]
        assert recorder.failures[0][0] == 2

    def test_progress_never_reaches_100_on_failure(self):
        client = RecordingClient(fail_ingest_at=1)
        pump, _, recorder = _make_pump(client)
        result = pump.run(ListProvider([10, 10], client))
        assert all(p.percent < 100 for p in recorder.progress)
        assert result.progress.percent == 50

    def test_page_fetch_error_still_ends_session(self):
        client = RecordingClient()
        pump, _, _ = _make_pump(client)
        result = pump.run(ListProvider([5, 5, 5], client, fail_after=2))
        assert result.status is ImportStatus.FAILED
        assert result.failed_page_index == 2
        assert result.handled_lines == 10
        assert client.calls.count("end") == 1

    def test_end_failure_on_error_path_is_swallowed(self):
        client = RecordingClient(fail_ingest_at=0, fail_end=True)
        pump, _, _ = _make_pump(client)
        result = pump.run(ListProvider([5], client))
        assert result.failed_chunk_index == 0
        assert client.calls.count("end") == 1

    def test_end_failure_on_success_path_fails_import(self):
        client = RecordingClient(fail_end=True)
        pump, _, _ = _make_pump(client)
        result = pump.run(ListProvider([5], client))
        assert result.status is ImportStatus.FAILED
        assert result.handled_lines == 5


class TestSessionStart:
    def test_rejected_start_sends_nothing(self):
        client = RecordingClient(reject_start=True)
        pump, session, recorder = _make_pump(client)

        with pytest.raises(SessionStartError):
            pump.run(ListProvider([5, 5], client))

        assert client.calls == ["start"]
        assert recorder.started == []


class TestOrderingProperties:
    @pytest.mark.parametrize("seed", range(20))
    def test_randomized_chunk_sizes(self, seed):
        rng = random.Random(seed)
        sizes = [rng.randint(1, 50) for _ in range(rng.randint(1, 15))]
        client = RecordingClient()
        provider = ListProvider(sizes, client)
        pump, _, recorder = _make_pump(client)

        result = pump.run(provider)

        assert [len(c) for c in client.ingested] == sizes
        assert result.handled_lines == sum(sizes)
        assert client.max_in_flight == 1
        flattened = [line for chunk in client.ingested for line in chunk]
        assert flattened == [f"line {i}" for i in range(sum(sizes))]
        percents = [p.percent for p in recorder.progress]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert 100 not in percents[:-1]
        assert client.calls.count("end") == 1

    def test_growing_estimate_is_capped_below_100_until_final(self):
        client = RecordingClient()
        pump, _, recorder = _make_pump(client)

        class GrowingProvider(ListProvider):
            def _generate(self):
                seen = 0
                for index, size in enumerate(self._sizes):
                    lines = tuple(f"line {seen + i}" for i in range(size))
                    yield Chunk(index, lines, seen, seen + size, final=False)
                    seen += size

        result = pump.run(GrowingProvider([10, 10, 10]))

        assert [p.percent for p in recorder.progress] == [99, 99, 99, 100]
        assert [p.total_lines_estimate for p in recorder.progress] == [10, 20, 30, 30]
        assert result.progress.percent == 100


class TestCancellation:
    def test_cancel_stops_and_ends(self):
        client = RecordingClient()
        cancel = threading.Event()
        pump, _, recorder = _make_pump(client, cancel_event=cancel)

        class CancelAfterFirst:
            def on_started(self, session_id): pass
            def on_progress(self, progress): cancel.set()
            def on_chunk_failed(self, chunk_index, error): pass
            def on_finished(self, result): pass

        pump.add_observer(CancelAfterFirst())
        result = pump.run(ListProvider([5, 5, 5], client))

        assert result.status is ImportStatus.CANCELLED
        assert result.handled_lines == 5
        assert client.calls.count("end") == 1
        assert not result.ok


class TestImportContext:
    def test_estimate_never_decreases(self):
        ctx = ImportContext(session=None)
        ctx.advance(Chunk(0, ("a",) * 10, 0, 100))
        progress = ctx.advance(Chunk(1, ("a",) * 10, 10, 50))
        assert progress.total_lines_estimate == 100
        assert progress.percent == 20

    def test_observers_satisfy_protocol(self):
        assert isinstance(LoggingObserver(), ImportObserver)
        assert isinstance(ProgressRecorder(), ImportObserver)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            ChunkPump(ImportSession(RecordingClient(), SessionOptions(pattern="x")), chunk_size=0)


class TestCancelledBeforeStart:
    def test_no_session_is_opened(self):
        client = RecordingClient()
        cancel = threading.Event()
        cancel.set()
        pump, session, recorder = _make_pump(client, cancel_event=cancel)
        provider = ListProvider([5], client)

        result = pump.run(provider)

        assert client.calls == []
        assert provider.produced == []
        assert result.status is ImportStatus.CANCELLED
        assert result.session_id is None
        assert recorder.started == []
        assert recorder.finished == [result]


class TestEmptySource:
    def test_zero_lines_is_reported(self):
        client = RecordingClient()
        pump, _, _ = _make_pump(client)

        result = pump.run(ListProvider([], client))

        assert result.ok
        assert result.empty
        assert result.handled_lines == 0
        assert result.error == "No logs were retrieved from list"
        assert client.calls == ["start", "end"]

    def test_non_empty_import_is_not_empty(self):
        client = RecordingClient()
        pump, _, _ = _make_pump(client)
        result = pump.run(ListProvider([3], client))
        assert not result.empty
        assert result.error is None
