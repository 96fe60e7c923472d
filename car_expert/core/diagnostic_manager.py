"""
Diagnostic Manager - command handler around the protocol client

Responsibilities:
- Own the single active session for one user
- Supersede the active session on a new start or an explicit reset
- Translate contract violations into IllegalCommand results
- Archive concluded sessions when an archive is configured (an archive
  failure is logged and never costs the user the result)
- Serve history as reconstructed read-only views

Design principles:
- Commands in, results out (handle() is the only entry point)
- Remote failures propagate as exceptions; the session is untouched
- The manager lock guards only the active-session pointer; it is never
  held across a network call
"""

import logging
import threading
from typing import Optional

from car_expert.commands import (
    HISTORY_SOURCE_ARCHIVE,
    HISTORY_SOURCE_AUTHORITY,
    Command,
    FetchHistory,
    NewDiagnostic,
    StartDiagnostic,
    SubmitAnswer,
)
from car_expert.contracts import SessionState, SessionView
from car_expert.core.history import reconstruct_history
from car_expert.core.protocol_client import DiagnosisProtocolClient
from car_expert.core.session_state import DiagnosticSession
from car_expert.errors import ContractViolation
from car_expert.persistence import SessionArchive, record_from_view
from car_expert.results import (
    HistoryResult,
    IllegalCommand,
    SessionReset,
    TurnResult,
)

logger = logging.getLogger(__name__)


class DiagnosticManager:
    """
    Drives one user's diagnostics through commands.

    Usage:
        manager = DiagnosticManager(client)
        result = manager.handle(StartDiagnostic('brake'))
        result = manager.handle(SubmitAnswer('yes'))
    """

    def __init__(self, client: DiagnosisProtocolClient, archive: Optional[SessionArchive] = None):
        """
        Args:
            client: Protocol client (shared safely between managers)
            archive: Optional local archive for concluded sessions
        """
        self.client = client
        self.archive = archive
        self._active: Optional[DiagnosticSession] = None
        self._lock = threading.Lock()

    def active_view(self) -> Optional[SessionView]:
        """Snapshot of the active session, or None."""
        with self._lock:
            session = self._active
        return session.snapshot() if session is not None else None

    def handle(self, command: Command):
        """
        Process one command.

        Returns:
            TurnResult | HistoryResult | SessionReset | IllegalCommand

        Raises:
            AuthenticationExpired, ValidationRejected, MalformedResponse,
            TransportFailure: propagated from the protocol client
            TypeError: Unknown command type
        """
        if isinstance(command, StartDiagnostic):
            return self._start(command)
        if isinstance(command, SubmitAnswer):
            return self._answer(command)
        if isinstance(command, NewDiagnostic):
            return self._reset()
        if isinstance(command, FetchHistory):
            return self._history(command)
        raise TypeError(f"Unknown command: {type(command).__name__}")

    def _reject(self, command: Command, reason: str) -> IllegalCommand:
        logger.warning(f"Rejected {type(command).__name__}: {reason}")
        return IllegalCommand(reason=reason, command_type=type(command).__name__)

    def _start(self, command: StartDiagnostic):
        with self._lock:
            previous = self._active
            if previous is not None:
                if previous.in_flight:
                    return self._reject(command, "A request for the current session is still in flight")
                if previous.state == SessionState.AWAITING_ANSWER and previous.failure is None:
                    return self._reject(
                        command,
                        f"Session {previous.session_id} is awaiting an answer; "
                        f"start a new diagnostic first"
                    )
                previous.abandon()

            session = self.client.new_session(command.diagnostic_type)
            self._active = session

        try:
            view = self.client.start(session)
        except ContractViolation as e:
            return self._reject(command, str(e))

        if view is None:
            return TurnResult(view=session.snapshot(), superseded=True)
        return TurnResult(view=view)

    def _answer(self, command: SubmitAnswer):
        with self._lock:
            session = self._active

        if session is None:
            return self._reject(command, "No active diagnostic session")

        if command.session_id is not None and command.session_id != session.session_id:
            return self._reject(
                command,
                f"Session {command.session_id} is no longer active"
            )

        try:
            view = self.client.answer(session, command.answer)
        except ContractViolation as e:
            return self._reject(command, str(e))

        if view is None:
            return TurnResult(view=session.snapshot(), superseded=True)

        if view.state == SessionState.CONCLUDED and self.archive is not None:
            self._archive(view)

        return TurnResult(view=view)

    def _archive(self, view: SessionView) -> None:
        """Local copy only; the concluded view is returned either way."""
        try:
            self.archive.save(record_from_view(view))
        except OSError as e:
            logger.error(f"Could not archive session {view.session_id}: {e}")

    def _reset(self) -> SessionReset:
        with self._lock:
            previous = self._active
            self._active = None

        if previous is None:
            return SessionReset(previous_session_id=None)

        previous.abandon()
        return SessionReset(previous_session_id=previous.session_id)

    def _history(self, command: FetchHistory):
        if command.source == HISTORY_SOURCE_AUTHORITY:
            records = self.client.list_history()
        elif command.source == HISTORY_SOURCE_ARCHIVE:
            if self.archive is None:
                return self._reject(command, "No local archive configured")
            records = self.archive.load_all()
        else:
            return self._reject(command, f"Unknown history source {command.source!r}")

        return HistoryResult(sessions=tuple(reconstruct_history(records)), source=command.source)
