"""
Command types for DiagnosticManager control flow.

Commands are the public interface to DiagnosticManager. Shells (console,
Flask) build a command, hand it to handle(), and render the result.
"""

from dataclasses import dataclass
from typing import Optional

HISTORY_SOURCE_AUTHORITY = "authority"
HISTORY_SOURCE_ARCHIVE = "archive"


@dataclass(frozen=True)
class StartDiagnostic:
    """
    Start a new diagnostic session.

    Legal when no session is active or the active one is concluded.
    Returns: TurnResult with the first question.
    """
    diagnostic_type: Optional[str] = None


@dataclass(frozen=True)
class SubmitAnswer:
    """
    Answer the pending question of the active session.

    session_id, when given, must match the active session; a submit
    aimed at a superseded session is rejected rather than applied to
    whichever session is active now.
    Returns: TurnResult with the next question or the concluded result.
    """
    answer: str
    session_id: Optional[str] = None


@dataclass(frozen=True)
class NewDiagnostic:
    """
    Abandon the active session and go back to type selection.

    Returns: SessionReset.
    """
    pass


@dataclass(frozen=True)
class FetchHistory:
    """
    Load stored sessions as read-only views.

    source: 'authority' (remote sessions list) or 'archive' (local files)
    Returns: HistoryResult.
    """
    source: str = HISTORY_SOURCE_AUTHORITY


# Command union type for type hints
Command = StartDiagnostic | SubmitAnswer | NewDiagnostic | FetchHistory
