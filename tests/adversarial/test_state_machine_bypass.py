"""Adversarial tests — content file state machine bypass attempts.

These tests verify that:
1. Lifecycle steps cannot be skipped
2. Terminal states cannot be exited
3. A file cannot be committed twice
"""

from __future__ import annotations

import pytest

from intuneforge.core.content_state import ContentFileStateMachine, InvalidTransitionError
from intuneforge.models.states import VALID_TRANSITIONS, ContentFileState


def _at(state: ContentFileState) -> ContentFileStateMachine:
    path = [
        ContentFileState.URI_PENDING,
        ContentFileState.URI_ASSIGNED,
        ContentFileState.UPLOADING,
        ContentFileState.COMMITTING,
        ContentFileState.COMMITTED,
    ]
    machine = ContentFileStateMachine()
    machine.register("f")
    if state == ContentFileState.FAILED:
        machine.fail("f", "setup")
        return machine
    for step in path:
        if machine.get_state("f") == state:
            break
        machine.transition("f", step)
    return machine


class TestSkipAttempts:
    @pytest.mark.parametrize("state", list(ContentFileState))
    def test_every_disallowed_edge_rejected(self, state: ContentFileState):
        allowed = VALID_TRANSITIONS[state]
        for target in ContentFileState:
            if target in allowed:
                continue
            machine = _at(state)
            with pytest.raises(InvalidTransitionError):
                machine.transition("f", target)
            assert machine.get_state("f") == state

    def test_upload_before_uri(self):
        machine = _at(ContentFileState.URI_PENDING)
        with pytest.raises(InvalidTransitionError):
            machine.transition("f", ContentFileState.UPLOADING)


class TestTerminalStates:
    @pytest.mark.parametrize("terminal", [ContentFileState.COMMITTED, ContentFileState.FAILED])
    def test_cannot_leave(self, terminal: ContentFileState):
        machine = _at(terminal)
        for target in ContentFileState:
            with pytest.raises(InvalidTransitionError):
                machine.transition("f", target)

    def test_no_double_commit(self):
        machine = _at(ContentFileState.COMMITTED)
        with pytest.raises(InvalidTransitionError):
            machine.transition("f", ContentFileState.COMMITTED)

    def test_reregistering_does_not_reset(self):
        machine = _at(ContentFileState.FAILED)
        with pytest.raises(InvalidTransitionError):
            machine.register("f")
        assert machine.get_state("f") == ContentFileState.FAILED

    def test_history_is_a_copy(self):
        machine = _at(ContentFileState.UPLOADING)
        machine.history.clear()
        assert len(machine.history) == 3
