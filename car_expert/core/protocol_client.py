"""
Diagnosis Protocol Client - drives sessions against the Session Authority

Responsibilities:
- Turn start/answer intents into remote calls
- Turn remote responses into session transitions
- Apply the failure policy: no mutation on any error, session marked
  failed on a malformed response
- Fetch stored sessions for history reconstruction

Design principles:
- One client serves any number of sessions (no per-session state here)
- No global lock: each DiagnosticSession serializes only itself
- Contract checks happen before any network traffic
- No automatic retries
"""

import logging
from typing import List, Optional, Union

from car_expert.config import AuthorityConfig
from car_expert.contracts import Answer, HistoryRecord, SessionView
from car_expert.core.response_parser import parse_answer, parse_history, parse_start
from car_expert.core.session_state import DiagnosticSession, Operation
from car_expert.errors import MalformedResponse, ValidationRejected

logger = logging.getLogger(__name__)


def coerce_answer(answer: Union[Answer, str]) -> Answer:
    """
    Accept Answer or its wire string (case-insensitive).

    Raises:
        ValidationRejected: For anything other than yes/no
    """
    if isinstance(answer, Answer):
        return answer
    if isinstance(answer, str):
        try:
            return Answer(answer.strip().lower())
        except ValueError:
            pass
    raise ValidationRejected(f"Answer must be 'yes' or 'no', got {answer!r}")


class DiagnosisProtocolClient:
    """
    Protocol driver for diagnostic sessions.

    Usage:
        client = DiagnosisProtocolClient(authority, config)
        session = client.new_session('brake')
        client.start(session)
        client.answer(session, 'yes')
    """

    def __init__(self, authority, config: Optional[AuthorityConfig] = None):
        """
        Args:
            authority: Object with start(), answer(), list_sessions() returning
                decoded JSON (SessionAuthorityClient or a test double)
            config: Deployment config (diagnostic type policy)

        Raises:
            TypeError: If authority lacks a required method
        """
        for method in ('start', 'answer', 'list_sessions'):
            if not callable(getattr(authority, method, None)):
                raise TypeError(f"authority must have callable {method}() method")

        self.authority = authority
        self.config = config or AuthorityConfig()

    def new_session(self, diagnostic_type: Optional[str] = None) -> DiagnosticSession:
        """Fresh NOT_STARTED session. No network traffic."""
        return DiagnosticSession(diagnostic_type=diagnostic_type)

    def _validate_diagnostic_type(self, diagnostic_type: Optional[str]) -> None:
        if diagnostic_type is None:
            if self.config.require_diagnostic_type:
                raise ValidationRejected("Please select a diagnostic type")
            return

        known = self.config.diagnostic_types
        if known and diagnostic_type not in known:
            raise ValidationRejected(
                f"Unknown diagnostic type {diagnostic_type!r}",
                detail={'allowed': sorted(known)},
            )

    def start(self, session: DiagnosticSession) -> Optional[SessionView]:
        """
        Start session with the Authority.

        Returns:
            SessionView after the transition, or None if the session was
            abandoned while the call was in flight

        Raises:
            ContractViolation: Session already started, in flight, or failed
            ValidationRejected: Diagnostic type missing/unknown, or HTTP 422
            AuthenticationExpired: Credential missing or rejected
            MalformedResponse: Start payload has the wrong shape
            TransportFailure: Network error or unexpected status
        """
        token = session.begin(Operation.START)
        try:
            self._validate_diagnostic_type(session.diagnostic_type)
            started = parse_start(self.authority.start(session.diagnostic_type))
        except MalformedResponse as e:
            session.fail(token, str(e))
            raise
        except Exception:
            session.release(token)
            raise

        if not session.apply_start(token, started):
            return None
        return session.snapshot()

    def answer(self, session: DiagnosticSession, answer: Union[Answer, str]) -> Optional[SessionView]:
        """
        Submit a yes/no answer for the pending question.

        On any error the transcript and state are exactly as before the
        call, so re-issuing the same answer appends one user turn, not two.

        Returns:
            SessionView after the transition, or None if the session was
            abandoned while the call was in flight

        Raises:
            ContractViolation: Not started, concluded, failed, or in flight
            ValidationRejected: Answer is not yes/no, or HTTP 422
            AuthenticationExpired: Credential missing or rejected
            MalformedResponse: Neither/both branches (session becomes failed)
            TransportFailure: Network error or unexpected status
        """
        token = session.begin(Operation.ANSWER)
        try:
            choice = coerce_answer(answer)
            outcome = parse_answer(self.authority.answer(session.session_id, choice.value))
        except MalformedResponse as e:
            session.fail(token, str(e))
            raise
        except Exception:
            session.release(token)
            raise

        if not session.apply_answer(token, choice, outcome):
            return None
        return session.snapshot()

    def list_history(self) -> List[HistoryRecord]:
        """
        Fetch stored sessions for the authenticated user.

        Raises:
            AuthenticationExpired, MalformedResponse, TransportFailure
        """
        records = parse_history(self.authority.list_sessions())
        logger.info(f"Fetched {len(records)} stored sessions")
        return records
