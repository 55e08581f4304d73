"""Tuning hints sent by the sync service.

The server may suggest, in the meta of any sync response, how many QSOs to
send per cycle and how long to wait between cycles. Suggestions that are
missing or not positive integers are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ServerHints:
    """Tuning values suggested by the server.

    Attributes:
        batch_size: Suggested QSOs per cycle.
        loop_delay: Suggested delay between continuation cycles, in seconds.
        check_period: Suggested watchdog threshold, in seconds.
    """

    batch_size: int | None = None
    loop_delay: float | None = None
    check_period: float | None = None

    @classmethod
    def from_meta(cls, meta: dict[str, Any]) -> ServerHints:
        """Extract hints from response meta.

        Both camelCase and snake_case keys are accepted; delays arrive in
        whole seconds.
        """
        return cls(
            batch_size=_positive_int(meta, "suggestedSyncBatchSize", "suggested_sync_batch_size"),
            loop_delay=_positive_seconds(meta, "suggestedSyncLoopDelay", "suggested_sync_loop_delay"),
            check_period=_positive_seconds(
                meta, "suggestedSyncCheckPeriod", "suggested_sync_check_period"
            ),
        )

    @property
    def empty(self) -> bool:
        """True if the server suggested nothing usable."""
        return self.batch_size is None and self.loop_delay is None and self.check_period is None


def _positive_int(meta: dict[str, Any], *keys: str) -> int | None:
    for key in keys:
        value = meta.get(key)
        if value is None:
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s in sync meta: %r", key, value)
            return None
        return number if number >= 1 else None
    return None


def _positive_seconds(meta: dict[str, Any], *keys: str) -> float | None:
    number = _positive_int(meta, *keys)
    return float(number) if number is not None else None
