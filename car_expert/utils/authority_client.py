"""
Session Authority HTTP client - transport wrapper for the diagnosis engine

Responsibilities:
- Issue start / answer / sessions calls with the bearer credential
- Map transport exceptions and HTTP statuses onto the error taxonomy
- Return decoded JSON; shape validation is the Response Parser's job

Design principles:
- Dependency injection (httpx.Client and credentials passed in, no singleton)
- No retries; the caller decides whether to re-issue a call
- Safe to share between sessions: no per-session state lives here
"""

import logging
from typing import Any, Dict, Optional

import httpx

from car_expert.config import AuthorityConfig
from car_expert.errors import (
    AuthenticationExpired,
    MalformedResponse,
    TransportFailure,
    ValidationRejected,
)
from car_expert.utils.credentials import CredentialProvider

logger = logging.getLogger(__name__)

START_PATH = "/api/diagnostic/start"
ANSWER_PATH = "/api/diagnostic/{session_id}/answer"
SESSIONS_PATH = "/api/diagnostic/sessions"


def build_http(config: AuthorityConfig, transport: Optional[httpx.BaseTransport] = None) -> httpx.Client:
    """Connection pool pointed at the Authority. Thread-safe; share it freely."""
    http = httpx.Client(
        base_url=config.base_url,
        timeout=config.timeout,
        transport=transport,
    )
    logger.info(f"Session Authority connection pool created for {config.base_url}")
    return http


class SessionAuthorityClient:
    """HTTP client for the remote diagnosis engine"""

    def __init__(self, http: httpx.Client, credentials: CredentialProvider) -> None:
        """
        Args:
            http: httpx client with base_url pointing at the Authority
            credentials: Bearer token source for every call
        """
        self._http = http
        self._credentials = credentials

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start(self, diagnostic_type: Optional[str] = None) -> Any:
        """POST start. Body omits diagnostic_type when none was chosen."""
        body: Dict[str, str] = {}
        if diagnostic_type is not None:
            body['diagnostic_type'] = diagnostic_type
        return self._post(START_PATH, body, operation="start")

    def answer(self, session_id: str, answer: str) -> Any:
        """POST answer ('yes' or 'no') for session_id."""
        path = ANSWER_PATH.format(session_id=session_id)
        return self._post(path, {'answer': answer}, operation="answer")

    def list_sessions(self) -> Any:
        """POST sessions list for the authenticated user."""
        return self._post(SESSIONS_PATH, None, operation="sessions")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, path: str, body: Optional[Dict[str, str]], operation: str) -> Any:
        token = self._credentials.bearer_token()
        headers = {'Authorization': f"Bearer {token}"}

        try:
            response = self._http.post(path, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"{operation} timed out: {e}")
            raise TransportFailure(f"{operation} timed out")
        except httpx.HTTPError as e:
            logger.error(f"{operation} transport error: {e}")
            raise TransportFailure(f"{operation} failed: {e}")

        return self._decode(response, operation)

    def _decode(self, response: httpx.Response, operation: str) -> Any:
        status = response.status_code

        if status == 401:
            logger.warning(f"{operation} rejected: credential expired")
            self._credentials.invalidate()
            raise AuthenticationExpired(f"{operation}: credential rejected")

        if status == 422:
            detail = self._error_detail(response)
            logger.warning(f"{operation} rejected as invalid: {detail}")
            raise ValidationRejected(f"{operation}: request rejected", detail=detail)

        if status != 200:
            logger.error(f"{operation} returned unexpected status {status}")
            raise TransportFailure(f"{operation}: unexpected status {status}", status_code=status)

        try:
            return response.json()
        except ValueError:
            raise MalformedResponse(f"{operation}: response body is not JSON")

    @staticmethod
    def _error_detail(response: httpx.Response) -> Optional[object]:
        try:
            payload = response.json()
        except ValueError:
            return response.text or None
        if isinstance(payload, dict):
            return payload.get('detail', payload)
        return payload
