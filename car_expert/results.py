"""
Result types returned by DiagnosticManager.handle()

These are the ONLY return types from the command handler. Remote
failures (authentication, validation, transport, malformed responses)
are raised, not returned.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from car_expert.contracts import SessionState, SessionView


@dataclass(frozen=True)
class TurnResult:
    """
    Successful start or answer.

    Returned by: StartDiagnostic, SubmitAnswer

    Attributes:
        view: Session snapshot after the exchange
        superseded: True when the session was abandoned while the call was
            in flight; the response was dropped and view is the abandoned
            session's last state
    """
    view: SessionView
    superseded: bool = False

    @property
    def concluded(self) -> bool:
        return self.view.state == SessionState.CONCLUDED

    @property
    def system_output(self) -> str:
        """Text of the latest system turn (question or rendered result)."""
        return self.view.transcript[-1].content if self.view.transcript else ""


@dataclass(frozen=True)
class HistoryResult:
    """
    Reconstructed stored sessions.

    Returned by: FetchHistory

    Attributes:
        sessions: Read-only CONCLUDED views, in the order received
        source: 'authority' or 'archive'
    """
    sessions: Tuple[SessionView, ...]
    source: str


@dataclass(frozen=True)
class SessionReset:
    """
    Active session abandoned.

    Returned by: NewDiagnostic

    Attributes:
        previous_session_id: Id of the abandoned session (None if there was
            none, or it never got one)
    """
    previous_session_id: Optional[str]


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected (invalid lifecycle transition).

    Examples:
    - SubmitAnswer when no session is active
    - SubmitAnswer after the session concluded
    - StartDiagnostic while a question is pending
    - SubmitAnswer aimed at a superseded session

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
