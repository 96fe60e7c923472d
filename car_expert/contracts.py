"""
Semantic contracts for the car diagnostic client.

This module defines immutable data structures that serve as contracts
between modules. They define shape and semantics; validation of remote
payloads lives in the Response Parser.

Design principles:
- Frozen dataclasses (immutable after creation)
- No dependencies on other project modules
- Tuples instead of lists/dicts wherever ordering must be preserved

Contents:
- Speaker / Turn: one transcript entry
- Answer: the yes/no wire values
- DiagnosticResult: structured outcome of a concluded session
- NextQuestion / Conclusion: the two legal answer-response branches
- SessionStarted: payload of a successful start call
- SessionState / SessionView: lifecycle state and read-only snapshot
- HistoryRecord: one stored session as handed back by the Authority

Usage:
    from car_expert.contracts import Turn, Speaker, DiagnosticResult
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class Speaker(str, Enum):
    """Who produced a transcript turn."""
    SYSTEM = "system"
    USER = "user"


class Answer(str, Enum):
    """
    The only two answers the Session Authority accepts.

    Values are the literal wire strings.
    """
    YES = "yes"
    NO = "no"

    @property
    def label(self) -> str:
        """Human-readable label used for the user turn ('Yes' / 'No')."""
        return self.value.capitalize()


@dataclass(frozen=True)
class Turn:
    """
    One atomic transcript entry.

    Attributes:
        speaker: Speaker.SYSTEM for questions and results, Speaker.USER for answers
        content: Opaque text (question, answer label, or rendered result)
    """
    speaker: Speaker
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {'speaker': self.speaker.value, 'content': self.content}


@dataclass(frozen=True)
class DiagnosticResult:
    """
    Structured outcome returned by the Session Authority on conclusion.

    Attributes:
        most_probable_problem: Label of the top-ranked problem
        probabilities: Ordered (label, fraction) pairs, exactly as received.
            Tuple of tuples (not dict) so the instance stays immutable and
            hashable; order is the render order.
        narrative: Free-form explanatory text ('diagnostic_message' on the wire)

    Examples:
        >>> result = DiagnosticResult(
        ...     most_probable_problem='Worn brake pads',
        ...     probabilities=(('Worn brake pads', 0.62), ('Air in brake lines', 0.38)),
        ...     narrative='Inspect pads.'
        ... )
        >>> result.probability_map()['Worn brake pads']
        0.62
    """
    most_probable_problem: str
    probabilities: Tuple[Tuple[str, float], ...]
    narrative: str

    def probability_map(self) -> Dict[str, float]:
        """Dict view of probabilities (insertion order preserved)."""
        return dict(self.probabilities)

    def to_wire(self) -> Dict[str, object]:
        """Serialize back to the Authority's JSON shape."""
        return {
            'most_probable_problem': self.most_probable_problem,
            'probabilities': self.probability_map(),
            'diagnostic_message': self.narrative,
        }


@dataclass(frozen=True)
class NextQuestion:
    """Answer-response branch: the session continues with another question."""
    question: str


@dataclass(frozen=True)
class Conclusion:
    """Answer-response branch: the session is concluded with a result."""
    result: DiagnosticResult


# Discriminated union of legal answer responses.
# Anything else is a MalformedResponse and never reaches the state machine.
AnswerOutcome = Union[NextQuestion, Conclusion]


@dataclass(frozen=True)
class SessionStarted:
    """Payload of a successful start call."""
    session_id: str
    question: str


class SessionState(str, Enum):
    """Lifecycle states of a diagnostic session."""
    NOT_STARTED = "not_started"
    AWAITING_ANSWER = "awaiting_answer"
    CONCLUDED = "concluded"


@dataclass(frozen=True)
class SessionView:
    """
    Read-only snapshot of a session, live or historical.

    Produced by DiagnosticSession.snapshot() for live sessions and by
    history reconstruction for stored ones. Shells render from this and
    never touch the session object itself.

    Attributes:
        session_id: None before start
        diagnostic_type: Domain tag, if any
        state: SessionState at snapshot time
        current_question: Pending question (AWAITING_ANSWER only)
        result: Final result (CONCLUDED only)
        transcript: Ordered turns
        historical: True for views rebuilt from stored records
    """
    session_id: Optional[str]
    diagnostic_type: Optional[str]
    state: SessionState
    current_question: Optional[str]
    result: Optional[DiagnosticResult]
    transcript: Tuple[Turn, ...]
    historical: bool = False

    def to_dict(self) -> Dict[str, object]:
        """
        JSON-safe session fields for the web shell.

        The transcript is left out; shells render it with
        Transcript.to_renderable().
        """
        return {
            'session_id': self.session_id,
            'diagnostic_type': self.diagnostic_type,
            'state': self.state.value,
            'current_question': self.current_question,
            'result': self.result.to_wire() if self.result is not None else None,
            'historical': self.historical,
        }


@dataclass(frozen=True)
class ConversationStep:
    """One stored question/answer pair from a historical session."""
    question: str
    answer: Answer


@dataclass(frozen=True)
class HistoryRecord:
    """
    One stored session as handed back by the Session Authority
    (or by the local SessionArchive).

    Attributes:
        session_id: Stored identifier ('id' on the wire), kept as text
        conversation: Ordered question/answer pairs
        result: Final diagnostic result
        diagnostic_type: Domain tag, when the store recorded one
    """
    session_id: str
    conversation: Tuple[ConversationStep, ...]
    result: DiagnosticResult
    diagnostic_type: Optional[str] = None

    def to_wire(self) -> Dict[str, object]:
        data = {
            'id': self.session_id,
            'conversation': [
                {'question': step.question, 'answer': step.answer.value}
                for step in self.conversation
            ],
            'diagnostic_result': self.result.to_wire(),
        }
        if self.diagnostic_type is not None:
            data['diagnostic_type'] = self.diagnostic_type
        return data
