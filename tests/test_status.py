from __future__ import annotations

import pytest

from nodeward.core.exceptions import ConsistencyViolation
from nodeward.status import TRANSITIONS, ServerStatus, check_transition, is_allowed, is_failure

pytestmark = [pytest.mark.unit]

S = ServerStatus

LEGAL_EDGES = {
    (S.PROVISIONING, S.READY_TO_DOMAIN_SETUP),
    (S.PROVISIONING, S.FAILED),
    (S.READY_TO_DOMAIN_SETUP, S.FAILED),
    (S.READY_TO_DOMAIN_SETUP, S.SSL_SETUP_STARTED),
    (S.SSL_SETUP_STARTED, S.RUNNING),
    (S.SSL_SETUP_STARTED, S.SSL_FAILED),
    (S.SSL_FAILED, S.SSL_SETUP_STARTED),
}


class TestTransitions:
    def test_graph_matches_lifecycle(self):
        edges = {(src, dst) for src, targets in TRANSITIONS.items() for dst in targets}
        assert edges == LEGAL_EDGES

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(ServerStatus)

    @pytest.mark.parametrize("status", list(ServerStatus))
    def test_reaffirmation_is_allowed(self, status: ServerStatus):
        assert is_allowed(status, status)

    def test_failed_is_terminal(self):
        for target in ServerStatus:
            if target is not S.FAILED:
                assert not is_allowed(S.FAILED, target)

    def test_ssl_failed_cannot_become_running(self):
        with pytest.raises(ConsistencyViolation) as exc_info:
            check_transition(S.SSL_FAILED, S.RUNNING)
        assert exc_info.value.current == "ssl_failed"
        assert exc_info.value.target == "running"

    def test_provisioning_cannot_skip_to_certificate(self):
        assert not is_allowed(S.PROVISIONING, S.SSL_SETUP_STARTED)

    def test_running_accepts_no_new_domain(self):
        assert not is_allowed(S.RUNNING, S.SSL_SETUP_STARTED)


class TestPredicates:
    def test_failure_states(self):
        assert is_failure(S.FAILED)
        assert is_failure(S.SSL_FAILED)
        assert not is_failure(S.RUNNING)

    def test_values_are_wire_strings(self):
        assert S.READY_TO_DOMAIN_SETUP == "ready_to_domain_setup"
        assert S("ssl_failed") is S.SSL_FAILED
