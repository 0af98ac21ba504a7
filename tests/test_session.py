"""Tests for wikicopy.session: debounced search and stale-result handling."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from wikicopy.models import SearchCandidate, SearchState
from wikicopy.session import SearchSession

DELAY = 0.3


def _candidate(page_id: int, title: str) -> SearchCandidate:
    return SearchCandidate(id=page_id, title=title, snippet='')


@pytest.fixture
def resolve_fn() -> MagicMock:
    return MagicMock(side_effect=lambda query: [_candidate(1, query)])


@pytest.fixture
def session(resolve_fn: MagicMock) -> SearchSession:
    return SearchSession(resolve_fn=resolve_fn, delay=DELAY, clock=lambda: 0.0)


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


class TestDebounce:

    def test_single_character_never_searches(self, session, resolve_fn) -> None:
        session.type('a', now=0.0)
        assert not session.pending
        assert not session.poll(now=5.0)
        resolve_fn.assert_not_called()

    def test_waits_for_quiet_period(self, session, resolve_fn) -> None:
        session.type('ab', now=0.0)
        assert not session.poll(now=0.1)
        resolve_fn.assert_not_called()
        assert session.poll(now=0.35)
        resolve_fn.assert_called_once_with('ab')
        assert session.state.query == 'ab'
        assert [c.title for c in session.state.candidates] == ['ab']

    def test_continuous_typing_fires_once(self, session, resolve_fn) -> None:
        for i, text in enumerate(['py', 'pyt', 'pyth', 'pytho']):
            session.type(text, now=i * 0.2)
            assert not session.poll(now=i * 0.2 + 0.1)
        assert session.poll(now=1.0)
        assert not session.poll(now=2.0)
        resolve_fn.assert_called_once_with('pytho')

    def test_cleared_before_quiet_period(self, session, resolve_fn) -> None:
        session.type('py', now=0.0)
        session.type('p', now=0.1)
        assert not session.poll(now=1.0)
        resolve_fn.assert_not_called()
        assert session.state == SearchState(query='p')

    def test_default_clock_used(self, resolve_fn) -> None:
        ticks = iter([10.0, 10.5])
        session = SearchSession(resolve_fn=resolve_fn, delay=DELAY, clock=lambda: next(ticks))
        session.type('py')
        assert session.poll()
        resolve_fn.assert_called_once_with('py')


# ---------------------------------------------------------------------------
# Stale completions
# ---------------------------------------------------------------------------


class TestStaleResults:

    def test_older_completion_ignored(self, session) -> None:
        first = session.begin('py')
        second = session.begin('pyt')
        assert session.complete(second, [_candidate(2, 'Pyt')])
        assert not session.complete(first, [_candidate(1, 'Py')])
        assert session.state.query == 'pyt'
        assert [c.id for c in session.state.candidates] == [2]

    def test_completion_after_clear_ignored(self, session) -> None:
        ticket = session.begin('py')
        session.type('', now=0.0)
        assert not session.complete(ticket, [_candidate(1, 'Py')])
        assert session.state.candidates == ()

    def test_state_replaced_not_mutated(self, session) -> None:
        before = session.state
        session.complete(session.begin('py'), [_candidate(1, 'Py')])
        assert session.state is not before
        assert before == SearchState()
