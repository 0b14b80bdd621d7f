"""Pattern detection: turn a preview sample into a parsing pattern to confirm."""

import dataclasses
import logging

from logimport.api_client import BackendClient
from logimport.errors import ApiError, PatternDetectionError
from logimport.models import DEFAULT_PATTERN, DetectionResult, Pattern, PreviewSample

logger = logging.getLogger(__name__)

# Lines used when testing a user-authored pattern.
PATTERN_TEST_LINES = 20


def default_pattern() -> Pattern:
    return dataclasses.replace(
        DEFAULT_PATTERN,
        custom_subpatterns=dict(DEFAULT_PATTERN.custom_subpatterns),
        fields=list(DEFAULT_PATTERN.fields),
    )


class PatternDetector:
    """Suggests a pattern for a preview and checks it parses the same lines.

    The result is only a proposal: nothing here starts an import.
    """

    def __init__(self, client: BackendClient, known_patterns: list[Pattern] | None = None):
        self._client = client
        self._known_patterns = list(known_patterns or [])

    def detect(self, sample: PreviewSample) -> DetectionResult:
        lines = list(sample.lines)
        try:
            return self._detect(lines)
        except PatternDetectionError as exc:
            logger.warning("Pattern detection failed, using default pattern: %s", exc)
            return self._fallback(str(exc))

    def _detect(self, lines: list[str]) -> DetectionResult:
        try:
            suggestions = self._client.suggest_patterns(lines)
        except ApiError as exc:
            raise PatternDetectionError(f"Pattern suggestion failed: {exc}") from exc

        if not suggestions:
            logger.info("No patterns could be detected for %d line(s)", len(lines))
            return self._fallback("No patterns could be automatically detected")

        best = suggestions[0]
        expression = best.get("pattern") or ""
        custom = dict(best.get("custom_patterns") or {})
        logger.info("Testing best match pattern: %s", expression)
        try:
            parsed = self._client.parse_logs(lines, expression, custom)
        except ApiError as exc:
            raise PatternDetectionError(f"Parsing with suggested pattern failed: {exc}") from exc

        if not parsed:
            logger.info("Suggested pattern parsed no lines, switching to custom pattern")
            return self._fallback("Auto-detected pattern failed to parse logs")

        pattern = self._match_known(expression) or Pattern(
            name=best.get("pattern_name") or "Auto-detected",
            expression=expression,
            description=best.get("pattern_description") or "Automatically detected pattern",
            custom_subpatterns=custom,
        )
        logger.info("Detected pattern %r (%d parsed record(s))", pattern.name, len(parsed))
        return DetectionResult(pattern=pattern, parsed_records=parsed)

    def _match_known(self, expression: str) -> Pattern | None:
        for known in self._known_patterns:
            if known.expression == expression:
                return known
        return None

    def _fallback(self, reason: str) -> DetectionResult:
        return DetectionResult(
            pattern=default_pattern(),
            custom_pattern_required=True,
            error=reason,
        )

    def test_pattern(self, pattern: Pattern, sample: PreviewSample) -> list[dict]:
        """Parse the head of the sample with a user-chosen pattern."""
        try:
            return self._client.parse_logs(
                sample.head(PATTERN_TEST_LINES), pattern.expression, pattern.custom_subpatterns
            )
        except ApiError as exc:
            raise PatternDetectionError(f"Failed to test pattern: {exc}") from exc
