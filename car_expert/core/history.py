"""
History Reconstruction - read-only views of stored sessions

Stored sessions are always concluded. They are rebuilt directly from
their conversation and result; they are never replayed through the
state machine or the Session Authority.

The final turn uses the same Result Formatter as a live conclusion, so
a stored session renders exactly like the live session that produced it.
"""

import logging
from typing import Iterable, List, Tuple

from car_expert.contracts import HistoryRecord, SessionState, SessionView, Speaker, Turn
from car_expert.core.result_formatter import format_result
from car_expert.core.transcript import Transcript

logger = logging.getLogger(__name__)


def rebuild_transcript(record: HistoryRecord) -> Tuple[Turn, ...]:
    """
    Conversation pairs -> turns, in stored order.

    Each step yields the system question then the user's answer label;
    the formatted result closes the transcript.
    """
    transcript = Transcript()
    for step in record.conversation:
        transcript.extend((Turn(Speaker.SYSTEM, step.question), Turn(Speaker.USER, step.answer.label)))
    transcript.append(Turn(Speaker.SYSTEM, format_result(record.result)))
    return transcript.turns()


def reconstruct_session(record: HistoryRecord) -> SessionView:
    """Build the read-only CONCLUDED view for one stored record."""
    return SessionView(
        session_id=record.session_id,
        diagnostic_type=record.diagnostic_type,
        state=SessionState.CONCLUDED,
        current_question=None,
        result=record.result,
        transcript=rebuild_transcript(record),
        historical=True,
    )


def reconstruct_history(records: Iterable[HistoryRecord]) -> List[SessionView]:
    """Rebuild every record, preserving the order they were handed over in."""
    views = [reconstruct_session(record) for record in records]
    logger.info(f"Reconstructed {len(views)} historical sessions")
    return views
