"""CloudWatch group and stream discovery."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

from logimport.api_client import BackendClient
from logimport.errors import ApiError, StreamDiscoveryError

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    groups: list = field(default_factory=list)
    streams: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.errors


class StreamDiscovery:
    """Lists log groups, then the streams of every group in parallel.

    A group whose stream listing fails is logged and skipped; the rest of
    the result is still usable.
    """

    def __init__(self, client: BackendClient, region: str, profile: str,
                 max_workers: int = 4):
        self._client = client
        self._region = region
        self._profile = profile
        self._max_workers = max_workers

    def list_groups(self) -> list[dict]:
        return self._client.list_log_groups(self._region, self._profile)

    def list_streams(self, group: str, start_time: datetime | None = None,
                     end_time: datetime | None = None) -> list[dict]:
        try:
            return self._client.list_log_streams(
                self._region, self._profile, group, start_time, end_time
            )
        except ApiError as exc:
            raise StreamDiscoveryError(group, str(exc)) from exc

    def discover(self, start_time: datetime | None = None,
                 end_time: datetime | None = None) -> DiscoveryResult:
        """Fetch every group and its streams. Failure to list groups propagates."""
        groups = self.list_groups()
        result = DiscoveryResult(groups=groups)
        names = [g.get("name", "") for g in groups if g.get("name")]
        if not names:
            return result

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            futures = {
                name: pool.submit(self.list_streams, name, start_time, end_time)
                for name in names
            }
            for name, future in futures.items():
                try:
                    result.streams[name] = future.result()
                except StreamDiscoveryError as exc:
                    logger.warning("%s", exc)
                    result.errors.append(exc)

        logger.info(
            "Discovered %d group(s), %d with streams, %d failed",
            len(groups), len(result.streams), len(result.errors),
        )
        return result
