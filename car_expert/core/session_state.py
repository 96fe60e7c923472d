"""
Session State Machine - lifecycle and transcript of one diagnostic session

Responsibilities:
- Enforce legal transitions (NOT_STARTED -> AWAITING_ANSWER -> ... -> CONCLUDED)
- Reject out-of-order and overlapping operations with ContractViolation
- Apply each successful exchange atomically (turns + state in one step)
- Drop responses that belong to an abandoned session or a stale request

Design principles:
- No network access; the protocol client drives this object
- One lock per session, never shared across sessions
- Nothing is mutated until a remote call has succeeded
- A request token correlates every response with the call that produced it

Transitions:
    NOT_STARTED     --start-->           AWAITING_ANSWER
    AWAITING_ANSWER --answer(question)-> AWAITING_ANSWER
    AWAITING_ANSWER --answer(result)-->  CONCLUDED
    CONCLUDED is terminal. A new diagnostic is a new DiagnosticSession.
"""

import itertools
import logging
import threading
from enum import Enum
from typing import Optional

from car_expert.contracts import (
    Answer,
    AnswerOutcome,
    Conclusion,
    DiagnosticResult,
    NextQuestion,
    SessionStarted,
    SessionState,
    SessionView,
    Speaker,
    Turn,
)
from car_expert.core.result_formatter import format_result
from car_expert.core.transcript import Transcript
from car_expert.errors import ContractViolation

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Remote operations a session can have in flight."""
    START = "start"
    ANSWER = "answer"


# Request tokens are unique per process so a token can never be mistaken
# for one issued to a different session object.
_request_tokens = itertools.count(1)


class DiagnosticSession:
    """
    One questionnaire interaction and its transcript.

    Lifecycle:
    1. Created NOT_STARTED with an optional diagnostic_type
    2. begin(Operation.START) / apply_start() after the remote start succeeds
    3. begin(Operation.ANSWER) / apply_answer() per answered question
    4. CONCLUDED: read-only from then on

    Callers that fail a remote call must release(token) so the session
    accepts the retry. A MalformedResponse is recorded with fail(token, reason)
    and blocks any further answers on this session.
    """

    def __init__(self, diagnostic_type: Optional[str] = None):
        self.diagnostic_type = diagnostic_type
        self._session_id: Optional[str] = None
        self._state = SessionState.NOT_STARTED
        self._current_question: Optional[str] = None
        self._result: Optional[DiagnosticResult] = None
        self._transcript = Transcript()

        self._lock = threading.Lock()
        self._pending_token: Optional[int] = None
        self._pending_operation: Optional[Operation] = None
        self._abandoned = False
        self._failure: Optional[str] = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_question(self) -> Optional[str]:
        return self._current_question

    @property
    def result(self) -> Optional[DiagnosticResult]:
        return self._result

    @property
    def failure(self) -> Optional[str]:
        """Reason this session was failed by a malformed response, if any."""
        return self._failure

    @property
    def in_flight(self) -> bool:
        return self._pending_token is not None

    def snapshot(self) -> SessionView:
        """Consistent read-only view (taken under the session lock)."""
        with self._lock:
            return SessionView(
                session_id=self._session_id,
                diagnostic_type=self.diagnostic_type,
                state=self._state,
                current_question=self._current_question,
                result=self._result,
                transcript=self._transcript.turns(),
            )

    # ------------------------------------------------------------------
    # Request bracketing
    # ------------------------------------------------------------------

    def begin(self, operation: Operation) -> int:
        """
        Reserve the session for one remote call.

        Args:
            operation: Operation about to be issued

        Returns:
            int: Request token to pass to apply_*/release/fail

        Raises:
            ContractViolation: If the operation is illegal in the current
                state, or another call is still in flight
        """
        with self._lock:
            self._check_allowed(operation)
            token = next(_request_tokens)
            self._pending_token = token
            self._pending_operation = operation
            logger.debug(f"Session {self._session_id or '<new>'}: {operation.value} in flight (token {token})")
            return token

    def _check_allowed(self, operation: Operation) -> None:
        if self._abandoned:
            raise ContractViolation(f"Cannot {operation.value}: session was abandoned")

        if self._pending_token is not None:
            raise ContractViolation(
                f"Cannot {operation.value}: {self._pending_operation.value} still in flight"
            )

        if self._failure is not None:
            raise ContractViolation(
                f"Cannot {operation.value}: session {self._session_id or '<new>'} "
                f"failed ({self._failure})"
            )

        if operation == Operation.START:
            if self._state != SessionState.NOT_STARTED:
                raise ContractViolation(
                    f"Cannot start: session {self._session_id} is {self._state.value}"
                )
            return

        if self._state == SessionState.NOT_STARTED:
            raise ContractViolation("Cannot answer: session has not been started")
        if self._state == SessionState.CONCLUDED:
            raise ContractViolation(f"Cannot answer: session {self._session_id} is concluded")

    def release(self, token: int) -> None:
        """Give up a reservation after a failed call. State is untouched."""
        with self._lock:
            if self._pending_token == token:
                self._pending_token = None
                self._pending_operation = None

    def fail(self, token: int, reason: str) -> None:
        """
        Mark the session unusable after a malformed response.

        Transcript and state stay as they were; only further answers
        are refused.
        """
        with self._lock:
            if self._pending_token != token:
                return
            self._pending_token = None
            self._pending_operation = None
            self._failure = reason
            logger.error(f"Session {self._session_id}: failed - {reason}")

    def abandon(self) -> None:
        """
        Supersede this session. Any response still on its way becomes a no-op.
        """
        with self._lock:
            self._abandoned = True
            logger.info(f"Session {self._session_id or '<new>'} abandoned ({self._state.value})")

    def _accepts(self, token: int, operation: Operation) -> bool:
        # Caller holds the lock
        if self._abandoned:
            logger.warning(
                f"Dropping late {operation.value} response for abandoned session {self._session_id}"
            )
            if self._pending_token == token:
                self._pending_token = None
                self._pending_operation = None
            return False
        if self._pending_token != token or self._pending_operation != operation:
            logger.warning(
                f"Dropping stale {operation.value} response for session {self._session_id} "
                f"(token {token}, expected {self._pending_token})"
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_start(self, token: int, started: SessionStarted) -> bool:
        """
        NOT_STARTED -> AWAITING_ANSWER.

        Returns:
            bool: False if the response was dropped (abandoned/stale)
        """
        with self._lock:
            if not self._accepts(token, Operation.START):
                return False

            self._session_id = started.session_id
            self._current_question = started.question
            self._transcript.append(Turn(Speaker.SYSTEM, started.question))
            self._state = SessionState.AWAITING_ANSWER
            self._pending_token = None
            self._pending_operation = None

        logger.info(f"Session {started.session_id} started (type={self.diagnostic_type})")
        return True

    def apply_answer(self, token: int, answer: Answer, outcome: AnswerOutcome) -> bool:
        """
        AWAITING_ANSWER -> AWAITING_ANSWER | CONCLUDED.

        The user turn and the following system turn are appended together
        with the state change, so no reader ever sees one without the other.

        Returns:
            bool: False if the response was dropped (abandoned/stale)
        """
        if isinstance(outcome, NextQuestion):
            system_turn = Turn(Speaker.SYSTEM, outcome.question)
        elif isinstance(outcome, Conclusion):
            system_turn = Turn(Speaker.SYSTEM, format_result(outcome.result))
        else:
            raise TypeError(f"Unsupported answer outcome: {type(outcome).__name__}")

        with self._lock:
            if not self._accepts(token, Operation.ANSWER):
                return False

            self._transcript.extend((Turn(Speaker.USER, answer.label), system_turn))

            if isinstance(outcome, Conclusion):
                self._result = outcome.result
                self._current_question = None
                self._state = SessionState.CONCLUDED
            else:
                self._current_question = outcome.question

            self._pending_token = None
            self._pending_operation = None

        if isinstance(outcome, Conclusion):
            logger.info(
                f"Session {self._session_id} concluded: {outcome.result.most_probable_problem}"
            )
        return True

    def __repr__(self) -> str:
        return (
            f"DiagnosticSession(id={self._session_id!r}, state={self._state.value}, "
            f"turns={len(self._transcript)})"
        )
