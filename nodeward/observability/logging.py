"""loguru sinks for the nodeward service.

Components log through ``logger.bind(component=...)`` and add the record they
act on (``server_id``, ``kind``, ``project_id``, ``instance_id``). Each line
ends with those keys in a fixed order, e.g.::

    12:00:03.120 | INFO     | orchestrator | Instance active at 203.0.113.5 [rpc#12 project=7 instance=1001]

Example:
    from nodeward.observability.logging import LogConfig, setup_logging, teardown_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", file=None))
    ...
    teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]


def _server_label(extra: dict[str, Any]) -> str | None:
    server_id = extra.get("server_id")
    if server_id is None:
        return None
    kind = extra.get("kind")
    return f"{kind}#{server_id}" if kind else f"server_id={server_id}"


def _render_context(extra: dict[str, Any]) -> str:
    parts = [
        label for label in (
            _server_label(extra),
            f"project_id={extra['project_id']}" if "project_id" in extra else None,
            f"instance_id={extra['instance_id']}" if "instance_id" in extra else None,
        )
        if label
    ]
    return f" [{' '.join(parts)}]" if parts else ""


def _patch(record: Any) -> None:
    extra = record["extra"]
    extra["_component"] = extra.get("component", record["name"])
    extra["_ctx"] = _render_context(extra)


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[_component]}</cyan> | "
    "<level>{message}</level><dim>{extra[_ctx]}</dim>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | component={extra[_component]} | "
    "{message}{extra[_ctx]} ({name}:{line})"
)


@dataclass(frozen=True, slots=True)
class LogConfig:
    """``[logging]`` section.

    Attributes:
        level: Minimum console level. The file sink always records DEBUG.
        file: Log file path, or None for no file sink.
        console: Log to stderr.
        rotation: File rotation policy (e.g. "50 MB", "1 day").
        retention: Number of rotated files to keep.
        json: Write the file sink as one JSON object per line.
    """

    level: LogLevel = "INFO"
    file: str | None = ".nodeward/nodeward.log"
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10
    json: bool = False


def setup_logging(config: LogConfig) -> list[int]:
    """Replace loguru's default sink with the configured ones; returns their ids."""
    logger.remove()
    logger.enable("nodeward")
    logger.configure(patcher=_patch)
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(
            sys.stderr,
            level=config.level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter="nodeward",
        ))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            serialize=config.json,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            diagnose=False,
            filter="nodeward",
        ))

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
