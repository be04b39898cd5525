"""Audit logging for tool command execution.

One record per executed or rejected invocation. Records are always emitted
as a structured log event and, when a log directory is configured, also
appended to a daily JSONL file. Command output is never recorded.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from shellwrap.logging import Loggers

logger = Loggers.tools()


@dataclass
class AuditEntry:
    """A single audit record.

    Attributes:
        timestamp: When the invocation finished (ISO format).
        session_id: Identifier grouping records of one server run.
        tool: Tool name, when known.
        command: The rendered command. None for rejected invocations.
        executed: Whether a process was spawned.
        exit_code: Exit code if executed.
        success: Whether the command succeeded.
        duration_ms: Execution duration in milliseconds.
        resource_limit_hit: "timeout" or "output" if a limit stopped the run.
        error: Spawn error or rejection reason.
        arguments: Names of the arguments supplied (values are not kept).
    """

    timestamp: str
    session_id: str
    executed: bool
    tool: str | None = None
    command: str | None = None
    exit_code: int | None = None
    success: bool | None = None
    duration_ms: int | None = None
    resource_limit_hit: str | None = None
    error: str | None = None
    arguments: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {k: v for k, v in asdict(self).items() if v is not None and v != []}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        return cls(
            timestamp=data.get("timestamp", ""),
            session_id=data.get("session_id", ""),
            executed=data.get("executed", False),
            tool=data.get("tool"),
            command=data.get("command"),
            exit_code=data.get("exit_code"),
            success=data.get("success"),
            duration_ms=data.get("duration_ms"),
            resource_limit_hit=data.get("resource_limit_hit"),
            error=data.get("error"),
            arguments=data.get("arguments", []),
        )


@dataclass
class AuditConfig:
    """Configuration for audit logging.

    Attributes:
        enabled: Whether records are produced at all.
        log_dir: Directory for JSONL files. None keeps records in the
            structured log only.
    """

    enabled: bool = True
    log_dir: str | None = None

    def get_log_dir(self) -> Path | None:
        """Get resolved log directory path."""
        return Path(self.log_dir).expanduser() if self.log_dir else None


class AuditLogger:
    """Writes audit records for tool invocations."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        session_id: str | None = None,
    ):
        self.config = config or AuditConfig()
        self.session_id = session_id or str(uuid.uuid4())[:8]
        self._ensure_log_dir()

    def _ensure_log_dir(self) -> None:
        log_dir = self.config.get_log_dir()
        if self.config.enabled and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)

    def _get_log_file(self, date: datetime | None = None) -> Path | None:
        log_dir = self.config.get_log_dir()
        if log_dir is None:
            return None
        if date is None:
            date = datetime.now()
        return log_dir / f"shellwrap_audit_{date.strftime('%Y-%m-%d')}.jsonl"

    def log(self, entry: AuditEntry) -> None:
        """Write an audit entry.

        Args:
            entry: The audit entry to log.
        """
        if not self.config.enabled:
            return

        logger.info("audit", **entry.to_dict())

        log_file = self._get_log_file()
        if log_file is None:
            return

        try:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as e:
            # Auditing problems never fail the command itself
            logger.error("audit_write_failed", path=str(log_file), error=str(e))

    def log_execution(
        self,
        command: str,
        *,
        exit_code: int,
        success: bool,
        duration_ms: int,
        tool: str | None = None,
        resource_limit_hit: str | None = None,
        error: str | None = None,
    ) -> AuditEntry:
        """Record a completed or failed execution.

        Returns:
            The created AuditEntry.
        """
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            session_id=self.session_id,
            executed=True,
            tool=tool,
            command=command,
            exit_code=exit_code,
            success=success,
            duration_ms=duration_ms,
            resource_limit_hit=resource_limit_hit,
            error=error,
        )
        self.log(entry)
        return entry

    def log_rejection(
        self,
        reason: str,
        *,
        tool: str | None = None,
        arguments: list[str] | None = None,
    ) -> AuditEntry:
        """Record an invocation refused before any process was spawned."""
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            session_id=self.session_id,
            executed=False,
            tool=tool,
            error=reason,
            arguments=sorted(arguments or []),
        )
        self.log(entry)
        return entry

    def query(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        tool: str | None = None,
        executed_only: bool = False,
        rejected_only: bool = False,
        limit: int = 100,
    ) -> Iterator[AuditEntry]:
        """Query audit entries written to the log directory.

        Args:
            start_date: Start of date range (default: a week before end).
            end_date: End of date range (default: now).
            tool: Filter by tool name.
            executed_only: Only return executed invocations.
            rejected_only: Only return rejected invocations.
            limit: Maximum entries to return.

        Yields:
            Matching AuditEntry objects.
        """
        if not self.config.enabled:
            return

        log_dir = self.config.get_log_dir()
        if log_dir is None or not log_dir.exists():
            return

        if end_date is None:
            end_date = datetime.now()
        if start_date is None:
            start_date = end_date - timedelta(days=7)

        current = start_date
        count = 0

        while current.date() <= end_date.date() and count < limit:
            log_file = self._get_log_file(current)

            if log_file is not None and log_file.exists():
                with open(log_file, encoding="utf-8") as f:
                    for line in f:
                        if count >= limit:
                            return
                        try:
                            entry = AuditEntry.from_dict(json.loads(line))
                        except json.JSONDecodeError:
                            continue

                        if tool and entry.tool != tool:
                            continue
                        if executed_only and not entry.executed:
                            continue
                        if rejected_only and entry.executed:
                            continue

                        yield entry
                        count += 1

            current += timedelta(days=1)
