"""Entry point for the log import client."""

import logging
import signal
import sys
import threading
from datetime import datetime, timedelta, timezone

from logimport.api_client import BackendClient
from logimport.config import load_config, parse_time
from logimport.detector import PATTERN_TEST_LINES, PatternDetector
from logimport.discovery import StreamDiscovery
from logimport.errors import ApiError, ImportPipelineError
from logimport.models import DetectionResult, Pattern, PreviewSample
from logimport.providers import CloudWatchProvider, FileProvider
from logimport.workflow import ImportWorkflow

logger = logging.getLogger(__name__)


def _time_range(args) -> tuple[datetime, datetime]:
    now = datetime.now(timezone.utc)
    return (
        parse_time(args.since, now - timedelta(hours=24)),
        parse_time(args.until, now),
    )


def _print_detection(sample: PreviewSample, detection: DetectionResult):
    pattern = detection.pattern
    print(f"Source: {sample.source_name} ({len(sample.lines)} preview lines)")
    print(f"Pattern: {pattern.name}")
    print(f"  {pattern.expression}")
    if detection.custom_pattern_required:
        print(f"No standard pattern matched ({detection.error}).")
        print("A custom pattern is required; the catch-all pattern stores whole lines.")
    for record in detection.parsed_records[:5]:
        print(f"  {record}")


def _ask(prompt: str) -> bool:
    return input(prompt).strip().lower() in ("y", "yes")


def _offer_save(client: BackendClient, pattern: Pattern):
    if not _ask("Save this pattern for future detections? [y/N] "):
        return
    name = input("Pattern name: ").strip()
    if not name:
        return
    pattern.name = name
    try:
        client.save_pattern(pattern)
        print(f"Saved pattern {name!r}")
    except ApiError as exc:
        logger.warning("Could not save pattern %r: %s", name, exc)


def _make_confirm(client: BackendClient, assume_yes: bool):
    def confirm(sample: PreviewSample, detection: DetectionResult) -> Pattern | None:
        _print_detection(sample, detection)
        if assume_yes:
            return detection.pattern
        answer = input("Import with this pattern? [y/N/custom] ").strip()
        if answer.lower() in ("y", "yes"):
            return detection.pattern
        if answer.lower() != "custom":
            return None

        expression = input("Grok pattern: ").strip()
        if not expression:
            return None
        pattern = Pattern(name="Custom Pattern", expression=expression)
        parsed = PatternDetector(client).test_pattern(pattern, sample)
        tested = min(len(sample.lines), PATTERN_TEST_LINES)
        print(f"Custom pattern parsed {len(parsed)} of {tested} lines")
        if parsed:
            _offer_save(client, pattern)
        if _ask("Import with the custom pattern? [y/N] "):
            return pattern
        return None

    return confirm


def _run_streams(client: BackendClient, config, args) -> int:
    start, end = _time_range(args)
    discovery = StreamDiscovery(client, config.aws_region, config.aws_profile)
    result = discovery.discover(start, end)
    for group in result.groups:
        name = group.get("name", "")
        streams = result.streams.get(name)
        if streams is None:
            print(f"{name}  (streams unavailable)")
            continue
        print(f"{name}  ({len(streams)} streams)")
        for stream in streams:
            print(f"  {stream.get('name', '')}")
    return 0


def _install_signal_handlers(cancel_event: threading.Event) -> dict:
    def handle_signal(signum, frame):
        logger.info("Received signal %d, cancelling import...", signum)
        cancel_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle_signal)
    return previous


def _restore_signal_handlers(previous: dict):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv=None) -> int:
    config, args = load_config(argv)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cancel_event = threading.Event()

    with BackendClient(config.api_url, timeout=config.request_timeout) as client:
        if not client.ping():
            logger.error("Backend at %s is not reachable", config.api_url)
            return 2

        try:
            if args.source == "streams":
                return _run_streams(client, config, args)

            if args.source == "file":
                provider = FileProvider(
                    args.path,
                    preview_bytes=config.preview_bytes,
                    preview_lines=config.preview_lines,
                )
            else:
                start, end = _time_range(args)
                provider = CloudWatchProvider(
                    client,
                    args.group,
                    args.stream,
                    start_time=start,
                    end_time=end,
                    region=config.aws_region,
                    profile=config.aws_profile,
                    page_limit=config.page_limit,
                    page_delay=config.page_delay,
                    empty_page_delay=config.empty_page_delay,
                    cancel_event=cancel_event,
                )

            workflow = ImportWorkflow(client, config, cancel_event=cancel_event)
            # Ctrl-C during detection and prompts aborts outright; only the
            # import itself turns signals into a cancel request.
            sample, detection = workflow.detect(provider)
            pattern = _make_confirm(client, args.yes)(sample, detection)
            if pattern is None:
                logger.info("Import of %s declined", provider.source_name)
                return 0

            previous = _install_signal_handlers(cancel_event)
            try:
                result = workflow.run_import(provider, pattern)
            finally:
                _restore_signal_handlers(previous)
        except KeyboardInterrupt:
            print()
            logger.warning("Interrupted before the import started")
            return 130
        except ImportPipelineError as exc:
            logger.error("%s", exc)
            return 1

    if not result.ok:
        logger.error("Import %s: %s", result.status.value, result.error or "cancelled")
        return 1
    if result.empty:
        logger.error("%s", result.error)
        return 1
    print(f"Imported {result.handled_lines} lines in {result.chunks_ingested} chunks")
    return 0


if __name__ == "__main__":
    sys.exit(main())
