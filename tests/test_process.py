from __future__ import annotations

import sys
import time

import pytest

from nodeward.core.exceptions import ProcessError
from nodeward.infra.process import run_streaming

pytestmark = [pytest.mark.unit]


@pytest.mark.asyncio
async def test_streams_output_and_exit_code():
    result = await run_streaming(
        [sys.executable, "-c", "import sys; print('one'); print('two', file=sys.stderr); sys.exit(3)"],
    )
    assert result.returncode == 3
    assert not result.ok
    assert not result.timed_out
    assert set(result.output) == {"one", "two"}


@pytest.mark.asyncio
async def test_success():
    result = await run_streaming([sys.executable, "-c", "print('done')"], timeout=30)
    assert result.ok
    assert result.output == ("done",)


@pytest.mark.asyncio
async def test_env_is_passed_through():
    result = await run_streaming(
        [sys.executable, "-c", "import os; print(os.environ['NODEWARD_MARKER'])"],
        env={"NODEWARD_MARKER": "hello", "PATH": "/usr/bin:/bin"},
    )
    assert result.output == ("hello",)


@pytest.mark.asyncio
async def test_watchdog_kills_process_group():
    script = (
        "import subprocess, sys, time\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        "print('started', flush=True)\n"
        "time.sleep(60)\n"
    )
    started = time.monotonic()
    result = await run_streaming([sys.executable, "-c", script], timeout=1.0)

    assert result.timed_out
    assert result.returncode is None
    assert not result.ok
    assert "started" in result.output
    assert time.monotonic() - started < 15


@pytest.mark.asyncio
async def test_missing_executable_raises():
    with pytest.raises(ProcessError):
        await run_streaming(["/nonexistent/ansible-playbook", "--version"])
