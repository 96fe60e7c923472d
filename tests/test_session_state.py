"""
Unit tests for the Session State Machine and Transcript

No network: responses are fed in directly as contract objects.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import threading

import pytest

from car_expert.contracts import (
    Answer,
    Conclusion,
    DiagnosticResult,
    NextQuestion,
    SessionStarted,
    SessionState,
    Speaker,
    Turn,
)
from car_expert.core.result_formatter import format_result
from car_expert.core.session_state import DiagnosticSession, Operation
from car_expert.core.transcript import Transcript
from car_expert.errors import ContractViolation


RESULT = DiagnosticResult(
    most_probable_problem="Worn brake pads",
    probabilities=(("Worn brake pads", 0.62), ("Air in brake lines", 0.38)),
    narrative="Inspect pads.",
)


def started_session(question="Do the brakes squeal?"):
    session = DiagnosticSession(diagnostic_type="brake")
    token = session.begin(Operation.START)
    assert session.apply_start(token, SessionStarted("sess-1", question))
    return session


# ========================
# Transcript
# ========================

def test_transcript_append_and_order():
    transcript = Transcript()
    transcript.append(Turn(Speaker.SYSTEM, "Q1"))
    transcript.append(Turn(Speaker.USER, "Yes"))

    assert len(transcript) == 2
    assert [turn.content for turn in transcript.turns()] == ["Q1", "Yes"]


def test_transcript_renderable_is_idempotent_and_detached():
    transcript = Transcript([Turn(Speaker.SYSTEM, "Q1")])

    first = transcript.to_renderable()
    first[0]['content'] = "tampered"
    second = transcript.to_renderable()

    assert second == ({'speaker': 'system', 'content': 'Q1'},)
    assert transcript.to_renderable() == second
    assert len(transcript) == 1


# ========================
# Transitions
# ========================

def test_new_session_is_not_started():
    session = DiagnosticSession()

    assert session.state == SessionState.NOT_STARTED
    assert session.session_id is None
    assert session.current_question is None
    assert session.result is None
    assert len(session.snapshot().transcript) == 0


def test_start_moves_to_awaiting_answer():
    session = started_session()

    assert session.state == SessionState.AWAITING_ANSWER
    assert session.session_id == "sess-1"
    assert session.current_question == "Do the brakes squeal?"
    assert session.result is None

    view = session.snapshot()
    assert view.transcript == (Turn(Speaker.SYSTEM, "Do the brakes squeal?"),)


def test_non_terminal_answer_replaces_question():
    session = started_session()
    token = session.begin(Operation.ANSWER)
    assert session.apply_answer(token, Answer.YES, NextQuestion("Is the pedal soft?"))

    view = session.snapshot()
    assert view.state == SessionState.AWAITING_ANSWER
    assert view.current_question == "Is the pedal soft?"
    assert [t.content for t in view.transcript] == [
        "Do the brakes squeal?", "Yes", "Is the pedal soft?"
    ]
    assert [t.speaker for t in view.transcript] == [Speaker.SYSTEM, Speaker.USER, Speaker.SYSTEM]


def test_terminal_answer_concludes():
    session = started_session()
    token = session.begin(Operation.ANSWER)
    assert session.apply_answer(token, Answer.NO, Conclusion(RESULT))

    view = session.snapshot()
    assert view.state == SessionState.CONCLUDED
    assert view.current_question is None
    assert view.result == RESULT
    assert view.transcript[-2] == Turn(Speaker.USER, "No")
    assert view.transcript[-1] == Turn(Speaker.SYSTEM, format_result(RESULT))


def test_transcript_length_is_two_per_answer_plus_one():
    session = started_session()
    outcomes = [NextQuestion("Q2"), NextQuestion("Q3"), NextQuestion("Q4"), Conclusion(RESULT)]

    for outcome in outcomes:
        token = session.begin(Operation.ANSWER)
        session.apply_answer(token, Answer.YES, outcome)

    assert len(session.snapshot().transcript) == 2 * len(outcomes) + 1
    assert session.snapshot().transcript[-1].content == format_result(RESULT)


def test_question_xor_result_invariant():
    session = started_session()
    assert session.current_question is not None and session.result is None

    token = session.begin(Operation.ANSWER)
    session.apply_answer(token, Answer.YES, Conclusion(RESULT))
    assert session.current_question is None and session.result is not None


# ========================
# Contract violations
# ========================

def test_answer_before_start_rejected():
    session = DiagnosticSession()

    with pytest.raises(ContractViolation):
        session.begin(Operation.ANSWER)

    assert session.state == SessionState.NOT_STARTED
    assert not session.in_flight


def test_start_twice_rejected():
    session = started_session()

    with pytest.raises(ContractViolation):
        session.begin(Operation.START)

    assert session.state == SessionState.AWAITING_ANSWER
    assert len(session.snapshot().transcript) == 1


def test_answer_after_conclusion_rejected():
    session = started_session()
    token = session.begin(Operation.ANSWER)
    session.apply_answer(token, Answer.YES, Conclusion(RESULT))

    with pytest.raises(ContractViolation):
        session.begin(Operation.ANSWER)
    with pytest.raises(ContractViolation):
        session.begin(Operation.START)

    assert len(session.snapshot().transcript) == 3


def test_overlapping_requests_rejected():
    session = started_session()
    session.begin(Operation.ANSWER)

    with pytest.raises(ContractViolation, match="in flight"):
        session.begin(Operation.ANSWER)


def test_release_restores_pre_call_state():
    session = started_session()
    before = session.snapshot()

    token = session.begin(Operation.ANSWER)
    session.release(token)

    assert session.snapshot() == before
    assert not session.in_flight
    # Retry is accepted and appends exactly one user turn
    token = session.begin(Operation.ANSWER)
    session.apply_answer(token, Answer.YES, NextQuestion("Q2"))
    assert session.snapshot().transcript.count(Turn(Speaker.USER, "Yes")) == 1


def test_failed_session_refuses_answers():
    session = started_session()
    before = session.snapshot()

    token = session.begin(Operation.ANSWER)
    session.fail(token, "neither question nor result")

    assert session.snapshot() == before
    assert session.failure == "neither question nor result"
    with pytest.raises(ContractViolation, match="failed"):
        session.begin(Operation.ANSWER)


# ========================
# Correlation
# ========================

def test_response_after_abandon_is_dropped():
    session = started_session()
    token = session.begin(Operation.ANSWER)
    before = session.snapshot()

    session.abandon()
    applied = session.apply_answer(token, Answer.YES, NextQuestion("Late question"))

    assert applied is False
    assert session.snapshot() == before
    assert not session.in_flight


def test_stale_token_is_dropped():
    session = started_session()
    stale = session.begin(Operation.ANSWER)
    session.release(stale)

    fresh = session.begin(Operation.ANSWER)
    assert session.apply_answer(stale, Answer.YES, NextQuestion("Stale")) is False
    assert session.apply_answer(fresh, Answer.NO, NextQuestion("Fresh")) is True
    assert session.current_question == "Fresh"


def test_abandoned_session_refuses_new_requests():
    session = started_session()
    session.abandon()

    with pytest.raises(ContractViolation, match="abandoned"):
        session.begin(Operation.ANSWER)


def test_independent_sessions_do_not_share_state():
    first = started_session("Brake question")
    second = started_session("Other question")

    token = first.begin(Operation.ANSWER)
    first.apply_answer(token, Answer.YES, Conclusion(RESULT))

    assert second.state == SessionState.AWAITING_ANSWER
    assert len(second.snapshot().transcript) == 1


def test_snapshot_never_sees_half_applied_exchange():
    """Readers racing an apply see either 1 or 3 turns, never 2"""
    session = started_session()
    token = session.begin(Operation.ANSWER)
    seen = set()
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            view = session.snapshot()
            seen.add((len(view.transcript), view.current_question))

    thread = threading.Thread(target=reader)
    thread.start()
    session.apply_answer(token, Answer.YES, NextQuestion("Q2"))
    stop.set()
    thread.join()

    seen.add((len(session.snapshot().transcript), session.current_question))
    assert seen <= {(1, "Do the brakes squeal?"), (3, "Q2")}
