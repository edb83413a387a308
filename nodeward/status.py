"""Lifecycle status graph for managed servers.

Pure logic, no I/O. Every component that writes a status asks this module
first; an edge missing from ``TRANSITIONS`` is never written.

    provisioning ──► ready_to_domain_setup ──► ssl_setup_started ──► running
         │                   │                    │      ▲
         ▼                   ▼                    ▼      │
       failed ◄──────────────┘                 ssl_failed┘ (new domain request)
"""

from __future__ import annotations

from enum import StrEnum

from nodeward.core.exceptions import ConsistencyViolation


class ServerStatus(StrEnum):
    PROVISIONING = "provisioning"
    READY_TO_DOMAIN_SETUP = "ready_to_domain_setup"
    SSL_SETUP_STARTED = "ssl_setup_started"
    RUNNING = "running"
    FAILED = "failed"
    SSL_FAILED = "ssl_failed"


TRANSITIONS: dict[ServerStatus, frozenset[ServerStatus]] = {
    ServerStatus.PROVISIONING: frozenset({
        ServerStatus.READY_TO_DOMAIN_SETUP,
        ServerStatus.FAILED,
    }),
    ServerStatus.READY_TO_DOMAIN_SETUP: frozenset({
        ServerStatus.SSL_SETUP_STARTED,
        ServerStatus.FAILED,
    }),
    ServerStatus.SSL_SETUP_STARTED: frozenset({
        ServerStatus.RUNNING,
        ServerStatus.SSL_FAILED,
    }),
    ServerStatus.SSL_FAILED: frozenset({ServerStatus.SSL_SETUP_STARTED}),
    ServerStatus.RUNNING: frozenset(),
    ServerStatus.FAILED: frozenset(),
}

FAILURE_STATES = frozenset({ServerStatus.FAILED, ServerStatus.SSL_FAILED})


def is_allowed(current: ServerStatus, target: ServerStatus) -> bool:
    """True if ``current -> target`` is an edge, or a re-affirmation of ``current``."""
    return current == target or target in TRANSITIONS[current]


def check_transition(current: ServerStatus, target: ServerStatus) -> None:
    if not is_allowed(current, target):
        raise ConsistencyViolation(current.value, target.value)


def is_failure(status: ServerStatus) -> bool:
    return status in FAILURE_STATES
