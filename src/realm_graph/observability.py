"""Logging setup and per-tool call statistics for the Realm Graph server."""
import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Set, Union

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "realm_graph"
LOG_FILE_NAME = "realm_graph.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send every ``realm_graph.*`` logger to a rotating file.

    Safe to call more than once; handlers are only attached the first time.

    Args:
        log_dir: Directory for ``realm_graph.log``. Defaults to
            ``~/.realm_graph/logs``.
        level: Level for the package logger and its handlers.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        console: Also echo records to stderr.

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else Path.home() / ".realm_graph" / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")

    # Exact types: RotatingFileHandler is itself a StreamHandler subclass
    handler_types = {type(h) for h in package_logger.handlers}
    new_handlers = []
    if RotatingFileHandler not in handler_types:
        new_handlers.append(
            RotatingFileHandler(
                log_path / LOG_FILE_NAME,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    if console and logging.StreamHandler not in handler_types:
        new_handlers.append(logging.StreamHandler())

    for handler in new_handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class ToolStats:
    """Running totals for one MCP tool."""

    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    owners: Set[str] = field(default_factory=set)
    last_error: Optional[str] = None
    last_failed_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "avg_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "slowest_ms": round(self.slowest_ms, 2),
            "distinct_owners": len(self.owners),
            "last_error": self.last_error,
            "last_failed_at": (
                self.last_failed_at.isoformat() if self.last_failed_at else None
            ),
        }


class MetricsCollector:
    """Call counts, latency and owner reach per tool, shared across threads."""

    def __init__(self):
        self._tools: Dict[str, ToolStats] = defaultdict(ToolStats)
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        with self._lock:
            stats = self._tools[operation]
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            if owner_id:
                stats.owners.add(owner_id)
            if not success:
                stats.failures += 1
                stats.last_error = error
                stats.last_failed_at = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-tool statistics keyed by tool name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._tools.items()}

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            calls = sum(s.calls for s in self._tools.values())
            failures = sum(s.failures for s in self._tools.values())
            owners = set().union(*(s.owners for s in self._tools.values()))
            return {
                "uptime_seconds": (
                    datetime.now(timezone.utc) - self._started
                ).total_seconds(),
                "total_calls": calls,
                "total_failures": failures,
                "active_owners": len(owners),
                "tools": sorted(self._tools),
            }

    def reset(self) -> None:
        with self._lock:
            self._tools.clear()
            self._started = datetime.now(timezone.utc)


metrics = MetricsCollector()


@contextmanager
def timed_operation(
    operation: str, owner_id: Optional[str] = None, **context
) -> Iterator[Dict[str, Any]]:
    """Time one tool call and record it against the calling owner.

    The yielded dict collects result details for the closing log line.
    Tools that turn an exception into an error response set ``op["error"]``
    so the call still counts as a failure.

    Example:
        with timed_operation("rg_subgraph", owner_id=owner, note_id=note) as op:
            data = projection_service.project_subgraph(owner, note)
            op["result_count"] = data.total_nodes
    """
    op: Dict[str, Any] = {}
    started = time.perf_counter()
    details = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"{operation} called by owner {owner_id} ({details})")

    try:
        yield op
    except Exception as e:
        op["error"] = e
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        error = op.pop("error", None)
        metrics.record_operation(
            operation,
            duration_ms,
            success=error is None,
            error=str(error) if error is not None else None,
            owner_id=owner_id,
        )
        outcome = "ok" if error is None else f"failed: {error}"
        result = ", ".join(f"{k}={v}" for k, v in op.items())
        logger.debug(f"{operation} {outcome} in {duration_ms:.2f}ms {result}".rstrip())
