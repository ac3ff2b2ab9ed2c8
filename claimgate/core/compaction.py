"""
Claim Compaction

Deletes address claim records whose window has elapsed so the claim store
does not grow without bound. A record older than the window can never
block a claim again, so removing it changes no decision.

CONFIGURATION:
- CLAIMGATE_COMPACTION_ENABLED: Run the background sweep (default: false)
- CLAIMGATE_COMPACTION_INTERVAL_SECONDS: Seconds between sweeps (default: 86400)

USAGE:
    sweeper = CompactionScheduler(service, CompactionConfig(enabled=True))
    sweeper.start()    # first sweep runs immediately
    ...
    sweeper.stop()

    # Or from cron: python -m tools.manage purge-expired
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from .errors import StorageError

if TYPE_CHECKING:
    from .service import ClaimService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompactionConfig:
    interval_seconds: int = 86400
    enabled: bool = False

    def __post_init__(self):
        if self.interval_seconds < 1:
            raise ValueError(f"interval_seconds must be >= 1, got {self.interval_seconds}")

    @classmethod
    def from_env(cls) -> "CompactionConfig":
        env = os.environ
        return cls(
            interval_seconds=int(env.get("CLAIMGATE_COMPACTION_INTERVAL_SECONDS", cls.interval_seconds)),
            enabled=env.get("CLAIMGATE_COMPACTION_ENABLED", "").lower() in ("1", "true", "yes"),
        )


class CompactionScheduler:
    """Periodic purge_expired() on a daemon thread, off the request path."""

    def __init__(self, service: "ClaimService", config: Optional[CompactionConfig] = None):
        self._service = service
        self._config = config or CompactionConfig.from_env()
        self._wakeup = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self.last_run_at: Optional[datetime] = None
        self.last_removed = 0
        self.last_error: Optional[str] = None

    @property
    def config(self) -> CompactionConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if not self._config.enabled:
            logger.info("Claim compaction disabled (CLAIMGATE_COMPACTION_ENABLED is not set)")
            return
        if self.is_running:
            logger.warning("Claim compaction already running")
            return

        self._wakeup.clear()
        self._worker = threading.Thread(target=self._sweep_forever, name="claim-compaction", daemon=True)
        self._worker.start()
        logger.info(f"Claim compaction every {self._config.interval_seconds}s")

    def stop(self, timeout: float = 5.0) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        self._wakeup.set()
        worker.join(timeout=timeout)
        logger.info("Claim compaction stopped")

    def _sweep_forever(self) -> None:
        # wait() returns True only when stop() sets the event
        while True:
            try:
                self.run_once()
            except StorageError as e:
                self.last_error = e.detail
                logger.error(f"Claim compaction failed: {e.detail}")
            except Exception as e:
                self.last_error = type(e).__name__
                logger.exception(f"Unexpected error during claim compaction: {e}")
            if self._wakeup.wait(self._config.interval_seconds):
                return

    def run_once(self) -> int:
        """Purge once and remember the result."""
        removed = self._service.purge_expired()
        self.last_removed = removed
        self.last_error = None
        self.last_run_at = datetime.now(timezone.utc)
        return removed

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self._config.enabled,
            "running": self.is_running,
            "interval_seconds": self._config.interval_seconds,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_removed": self.last_removed,
            "last_error": self.last_error,
        }
