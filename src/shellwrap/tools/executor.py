"""Asynchronous execution of rendered commands.

Commands run through the platform shell (``sh -c`` or ``cmd /c``) with a
timeout and an output bound taken from the security policy. The executor
never raises for execution problems: every outcome is a CommandResult.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
import time
from dataclasses import asdict, dataclass
from typing import Any

from shellwrap.logging import Loggers
from shellwrap.security.models import Policy, ShellFlavor
from shellwrap.security.policy import PolicyManager
from shellwrap.tools.audit import AuditLogger

logger = Loggers.tools()

_READ_CHUNK = 4096

# How long to wait for stderr to drain after the process is gone
_DRAIN_SECONDS = 1.0

LIMIT_TIMEOUT = "timeout"
LIMIT_OUTPUT = "output"


@dataclass
class ExecutionLimits:
    """Resource limits for one execution.

    Attributes:
        timeout_seconds: Maximum execution time.
        max_output_chars: Maximum stdout length before the process is killed.
    """

    timeout_seconds: float = 30
    max_output_chars: int = 5000

    @classmethod
    def from_policy(cls, policy: Policy, timeout_seconds: float | None = None) -> "ExecutionLimits":
        """Derive limits from a policy, optionally overriding the timeout."""
        return cls(
            timeout_seconds=timeout_seconds if timeout_seconds is not None else policy.max_execution_timeout,
            max_output_chars=policy.max_input_length,
        )


@dataclass(frozen=True)
class CommandResult:
    """Result of executing a command.

    Attributes:
        stdout: Standard output, stripped (may be truncated).
        stderr: Standard error, stripped.
        exit_code: Process exit code; -1 on timeout, 1 on spawn failure.
        success: Whether the command exited with code 0.
        duration_ms: Execution duration in milliseconds.
        error: Description of why the command did not succeed, if known.
        truncated: Whether the output bound stopped the command.
        resource_limit_hit: "timeout" or "output", if a limit was hit.
    """

    stdout: str
    stderr: str
    exit_code: int
    success: bool
    duration_ms: int = 0
    error: str | None = None
    truncated: bool = False
    resource_limit_hit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class CommandExecutor:
    """Runs commands through the platform shell and tracks live children.

    Example:
        >>> executor = CommandExecutor(PolicyManager.from_level("moderate"))
        >>> result = await executor.execute("echo hello")
        >>> result.stdout
        'hello'
    """

    def __init__(
        self,
        policy_manager: PolicyManager,
        audit: AuditLogger | None = None,
        shell_flavor: ShellFlavor | None = None,
    ) -> None:
        self.policy_manager = policy_manager
        self.audit = audit or AuditLogger()
        self.shell_flavor = shell_flavor or ShellFlavor.detect()
        self._live: set[asyncio.subprocess.Process] = set()

    @property
    def live_processes(self) -> int:
        """Number of children currently running."""
        return len(self._live)

    def shell_argv(self, command: str) -> list[str]:
        """Build the argv that hands ``command`` to the platform shell."""
        if self.shell_flavor is ShellFlavor.WINDOWS:
            return ["cmd", "/c", command]
        return ["sh", "-c", command]

    async def execute(
        self,
        command: str,
        *,
        timeout_seconds: float | None = None,
        tool_name: str | None = None,
    ) -> CommandResult:
        """Execute a rendered command.

        Args:
            command: Final command string from the secure renderer.
            timeout_seconds: Per-tool override of the policy timeout.
            tool_name: Tool name recorded in the audit log.

        Returns:
            CommandResult describing the outcome.
        """
        limits = ExecutionLimits.from_policy(self.policy_manager.policy, timeout_seconds)
        logger.info("command_executing", tool=tool_name, timeout=limits.timeout_seconds)
        logger.debug("command", command=command)

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.shell_argv(command),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=self.shell_flavor is ShellFlavor.POSIX,
            )
        except OSError as e:
            logger.error("command_spawn_failed", tool=tool_name, error=str(e))
            result = CommandResult(
                stdout="",
                stderr=str(e),
                exit_code=1,
                success=False,
                duration_ms=_elapsed_ms(start),
                error=f"Execution error: {e}",
            )
            self._record(command, result, tool_name)
            return result

        self._live.add(proc)
        try:
            result = await self._run(proc, limits, start)
        finally:
            self._live.discard(proc)

        logger.debug("command_completed", tool=tool_name, exit_code=result.exit_code)
        self._record(command, result, tool_name)
        return result

    async def terminate_all(self) -> int:
        """Kill every child still running.

        Returns:
            Number of processes that were terminated.
        """
        procs = list(self._live)
        for proc in procs:
            self._kill(proc)
        for proc in procs:
            await proc.wait()
        if procs:
            logger.info("children_terminated", count=len(procs))
        return len(procs)

    async def _run(
        self,
        proc: asyncio.subprocess.Process,
        limits: ExecutionLimits,
        start: float,
    ) -> CommandResult:
        stdout_chunks: list[str] = []
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        timed_out = False
        overflow = False

        try:
            overflow = await asyncio.wait_for(
                self._read_stdout(proc, stdout_chunks, limits.max_output_chars),
                timeout=limits.timeout_seconds,
            )
        except asyncio.TimeoutError:
            timed_out = True
            self._kill(proc)
            await proc.wait()
            logger.warning("command_timeout", timeout=limits.timeout_seconds)

        stderr = await self._drain(stderr_task)
        stdout = "".join(stdout_chunks)
        duration_ms = _elapsed_ms(start)

        if timed_out:
            return CommandResult(
                stdout=stdout.strip(),
                stderr=stderr.strip(),
                exit_code=-1,
                success=False,
                duration_ms=duration_ms,
                error=f"Command timeout after {limits.timeout_seconds} seconds",
                resource_limit_hit=LIMIT_TIMEOUT,
            )

        if overflow:
            return CommandResult(
                stdout=stdout[: limits.max_output_chars].strip(),
                stderr=stderr.strip(),
                exit_code=proc.returncode if proc.returncode is not None else -1,
                success=False,
                duration_ms=duration_ms,
                error=f"Command output exceeded {limits.max_output_chars} characters",
                truncated=True,
                resource_limit_hit=LIMIT_OUTPUT,
            )

        exit_code = proc.returncode or 0
        return CommandResult(
            stdout=stdout.strip(),
            stderr=stderr.strip(),
            exit_code=exit_code,
            success=exit_code == 0,
            duration_ms=duration_ms,
            error=None if exit_code == 0 else f"Command exited with code {exit_code}",
        )

    async def _read_stdout(
        self,
        proc: asyncio.subprocess.Process,
        chunks: list[str],
        max_chars: int,
    ) -> bool:
        """Stream stdout into ``chunks``; kill the process past ``max_chars``.

        Returns:
            True if the output bound was exceeded.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        size = 0

        while True:
            data = await proc.stdout.read(_READ_CHUNK)
            if not data:
                break
            text = decoder.decode(data)
            chunks.append(text)
            size += len(text)
            if size > max_chars:
                logger.warning("command_output_exceeded", limit=max_chars)
                self._kill(proc)
                await proc.wait()
                return True

        chunks.append(decoder.decode(b"", final=True))
        await proc.wait()
        return False

    async def _drain(self, stderr_task: asyncio.Future) -> str:
        try:
            data = await asyncio.wait_for(stderr_task, timeout=_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            stderr_task.cancel()
            return ""
        return data.decode("utf-8", errors="replace")

    def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """Kill a child and, on POSIX, everything in its session.

        The group is signalled even after the shell itself has exited; its
        background children outlive it.
        """
        if self.shell_flavor is ShellFlavor.POSIX:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
            return

        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    def _record(self, command: str, result: CommandResult, tool_name: str | None) -> None:
        if not self.policy_manager.is_audit_logging_enabled():
            return
        self.audit.log_execution(
            command,
            exit_code=result.exit_code,
            success=result.success,
            duration_ms=result.duration_ms,
            tool=tool_name,
            resource_limit_hit=result.resource_limit_hit,
            error=result.error,
        )
