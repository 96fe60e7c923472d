"""
Response Parser - validates Session Authority payloads into contracts

Responsibilities:
- Decode start responses into SessionStarted
- Decode answer responses into exactly one AnswerOutcome branch
- Decode session-list responses into HistoryRecord objects

Design principles:
- Explicit discriminated result, never truthiness on optional fields
- A payload with neither or both answer branches is MalformedResponse
- No partial results: any shape error fails the whole payload
"""

import logging
import math
from typing import Any, List, Tuple

from car_expert.contracts import (
    Answer,
    AnswerOutcome,
    Conclusion,
    ConversationStep,
    DiagnosticResult,
    HistoryRecord,
    NextQuestion,
    SessionStarted,
)
from car_expert.errors import MalformedResponse

logger = logging.getLogger(__name__)

# Wire field names (snake_case, as served by the Authority)
FIELD_SESSION_ID = 'session_id'
FIELD_QUESTION = 'question'
FIELD_RESULT = 'diagnostic_result'
FIELD_PROBLEM = 'most_probable_problem'
FIELD_PROBABILITIES = 'probabilities'
FIELD_MESSAGE = 'diagnostic_message'


def _require_mapping(payload: Any, context: str) -> dict:
    if not isinstance(payload, dict):
        raise MalformedResponse(f"{context}: expected JSON object, got {type(payload).__name__}")
    return payload


def _require_text(payload: dict, key: str, context: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise MalformedResponse(f"{context}: '{key}' must be a string, got {value!r}")
    return value


def _session_id(raw: Any, context: str) -> str:
    # Stored sessions use integer ids, live sessions use strings
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        raise MalformedResponse(f"{context}: session id must be string or integer, got {raw!r}")
    session_id = str(raw)
    if not session_id:
        raise MalformedResponse(f"{context}: session id is empty")
    return session_id


def _probabilities(raw: Any, context: str) -> Tuple[Tuple[str, float], ...]:
    if not isinstance(raw, dict):
        raise MalformedResponse(f"{context}: 'probabilities' must be an object")

    entries = []
    for label, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedResponse(f"{context}: probability for {label!r} is not a number")
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            raise MalformedResponse(f"{context}: probability for {label!r} out of range: {value}")
        entries.append((label, float(value)))

    return tuple(entries)


def parse_result(payload: Any, context: str = "diagnostic_result") -> DiagnosticResult:
    """
    Decode a wire diagnostic result.

    Raises:
        MalformedResponse: On any missing or mistyped field
    """
    data = _require_mapping(payload, context)
    return DiagnosticResult(
        most_probable_problem=_require_text(data, FIELD_PROBLEM, context),
        probabilities=_probabilities(data.get(FIELD_PROBABILITIES), context),
        narrative=_require_text(data, FIELD_MESSAGE, context),
    )


def parse_start(payload: Any) -> SessionStarted:
    """
    Decode a start response: {session_id, question}.

    Raises:
        MalformedResponse: If either field is missing or mistyped
    """
    data = _require_mapping(payload, "start response")
    return SessionStarted(
        session_id=_session_id(data.get(FIELD_SESSION_ID), "start response"),
        question=_require_text(data, FIELD_QUESTION, "start response"),
    )


def parse_answer(payload: Any) -> AnswerOutcome:
    """
    Decode an answer response into exactly one branch.

    {question: str}           -> NextQuestion
    {diagnostic_result: {..}} -> Conclusion
    neither / both            -> MalformedResponse

    A key present with a null value counts as present, so
    {question: null, diagnostic_result: {...}} is still ambiguous.
    """
    data = _require_mapping(payload, "answer response")

    has_question = FIELD_QUESTION in data
    has_result = FIELD_RESULT in data

    if has_question and has_result:
        raise MalformedResponse("answer response carries both a question and a result")
    if not has_question and not has_result:
        raise MalformedResponse("answer response carries neither a question nor a result")

    if has_result:
        return Conclusion(result=parse_result(data[FIELD_RESULT]))
    return NextQuestion(question=_require_text(data, FIELD_QUESTION, "answer response"))


def _parse_step(raw: Any, context: str) -> ConversationStep:
    data = _require_mapping(raw, context)
    question = _require_text(data, 'question', context)
    answer_text = _require_text(data, 'answer', context)
    try:
        answer = Answer(answer_text.strip().lower())
    except ValueError:
        raise MalformedResponse(f"{context}: answer must be 'yes' or 'no', got {answer_text!r}")
    return ConversationStep(question=question, answer=answer)


def parse_history_record(raw: Any) -> HistoryRecord:
    """Decode one stored session: {id, conversation, diagnostic_result}."""
    data = _require_mapping(raw, "history record")
    session_id = _session_id(data.get('id'), "history record")
    context = f"history record {session_id}"

    conversation = data.get('conversation')
    if not isinstance(conversation, list):
        raise MalformedResponse(f"{context}: 'conversation' must be a list")

    steps = tuple(
        _parse_step(item, f"{context} step {index}")
        for index, item in enumerate(conversation, start=1)
    )

    diagnostic_type = data.get('diagnostic_type')
    if diagnostic_type is not None and not isinstance(diagnostic_type, str):
        raise MalformedResponse(f"{context}: 'diagnostic_type' must be a string")

    return HistoryRecord(
        session_id=session_id,
        conversation=steps,
        result=parse_result(data.get(FIELD_RESULT), f"{context} result"),
        diagnostic_type=diagnostic_type,
    )


def parse_history(payload: Any) -> List[HistoryRecord]:
    """
    Decode a session-list response.

    Raises:
        MalformedResponse: If the payload is not a list or any record is bad
    """
    if not isinstance(payload, list):
        raise MalformedResponse(f"sessions response: expected JSON array, got {type(payload).__name__}")

    records = [parse_history_record(item) for item in payload]
    logger.debug(f"Parsed {len(records)} history records")
    return records
