"""
tests/test_lifecycle.py — Transition Tables
=============================================
"""

from __future__ import annotations

import pytest

from campushub.engine.lifecycle import (
    REGISTRATION_TRANSITIONS,
    TASK_TRANSITIONS,
    TERMINAL_TASK_STATES,
    registration_sources,
    task_sources,
)


class TestRegistrationTransitions:
    def test_cancel_sources(self):
        assert registration_sources("cancelled") == {"registered", "confirmed"}

    def test_attend_sources(self):
        assert registration_sources("attended") == {"registered", "confirmed"}

    def test_no_show_sources(self):
        assert registration_sources("no-show") == {"registered", "confirmed"}

    def test_confirm_only_from_registered(self):
        assert registration_sources("confirmed") == {"registered"}

    @pytest.mark.parametrize("state", ["cancelled", "attended", "no-show"])
    def test_terminal_states_have_no_exits(self, state):
        assert REGISTRATION_TRANSITIONS[state] == frozenset()

    def test_nothing_returns_to_registered(self):
        assert registration_sources("registered") == frozenset()


class TestTaskTransitions:
    @pytest.mark.parametrize(
        "target, sources",
        [
            ("in-progress", {"todo"}),
            ("review", {"in-progress"}),
            ("completed", {"in-progress", "review"}),
            ("cancelled", {"todo", "in-progress", "review"}),
            ("todo", set()),
        ],
    )
    def test_sources(self, target, sources):
        assert task_sources(target) == sources

    def test_terminal_states(self):
        assert TERMINAL_TASK_STATES == {"completed", "cancelled"}
        for state in TERMINAL_TASK_STATES:
            assert TASK_TRANSITIONS[state] == frozenset()

    def test_every_state_is_listed(self):
        assert set(TASK_TRANSITIONS) == {"todo", "in-progress", "review", "completed", "cancelled"}
