"""Async subprocess execution with streamed output and a kill-on-deadline watchdog."""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections import deque
from collections.abc import Awaitable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from nodeward.core.exceptions import ProcessError

if TYPE_CHECKING:
    from loguru import Logger

_STREAM_LIMIT = 1024 * 1024
_READER_GRACE = 5.0


@dataclass(frozen=True, slots=True)
class ProcessResult:
    argv: tuple[str, ...]
    returncode: int | None
    timed_out: bool = False
    output: tuple[str, ...] = ()
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


class ProcessRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        log: Logger | None = None,
    ) -> Awaitable[ProcessResult]: ...


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    with suppress(ProcessLookupError):
        os.killpg(proc.pid, signal.SIGKILL)


async def run_streaming(
    argv: Sequence[str],
    *,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    log: Logger | None = None,
    tail: int = 200,
) -> ProcessResult:
    """Run ``argv``, logging stdout/stderr line by line until it exits.

    With ``timeout`` set, a process still running at the deadline is killed
    together with its process group and the result has ``timed_out=True``
    and no meaningful return code. Raises :class:`ProcessError` only when
    the executable cannot be started.
    """
    log = log or logger.bind(component="process")
    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=dict(env) if env is not None else None,
            start_new_session=True,
            limit=_STREAM_LIMIT,
        )
    except OSError as e:
        raise ProcessError(f"Failed to start {argv[0]}: {e}") from e

    log.debug("Started pid {pid}: {cmd}", pid=proc.pid, cmd=" ".join(argv))
    lines: deque[str] = deque(maxlen=tail)

    async def pump() -> None:
        assert proc.stdout is not None
        async for raw in proc.stdout:
            line = raw.decode(errors="replace").rstrip()
            lines.append(line)
            log.info("{line}", line=line)

    reader = asyncio.create_task(pump())
    timed_out = False
    try:
        await asyncio.wait_for(proc.wait(), timeout)
    except TimeoutError:
        timed_out = True
        log.warning("Process {pid} still running after {t}s, killing it", pid=proc.pid, t=timeout)
        _kill_group(proc)
        await proc.wait()
    except asyncio.CancelledError:
        _kill_group(proc)
        reader.cancel()
        raise

    with suppress(TimeoutError):
        await asyncio.wait_for(reader, _READER_GRACE)

    elapsed = time.monotonic() - started
    returncode = None if timed_out else proc.returncode
    log.debug(
        "Process {pid} finished: returncode={rc} timed_out={to} elapsed={e:.1f}s",
        pid=proc.pid, rc=returncode, to=timed_out, e=elapsed,
    )
    return ProcessResult(
        argv=tuple(argv),
        returncode=returncode,
        timed_out=timed_out,
        output=tuple(lines),
        elapsed=elapsed,
    )
