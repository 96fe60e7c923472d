"""
Flask Web Application for the Car Expert diagnostic client

JSON gateway between a browser front end and the Session Authority.
Each request carries the user's bearer token; the gateway keeps one
DiagnosticManager per token and forwards the token explicitly.
"""

import logging
import threading
from collections import OrderedDict

from flask import Flask, jsonify, request

from car_expert.commands import (
    HISTORY_SOURCE_AUTHORITY,
    FetchHistory,
    NewDiagnostic,
    StartDiagnostic,
    SubmitAnswer,
)
from car_expert.config import AuthorityConfig
from car_expert.core.diagnostic_manager import DiagnosticManager
from car_expert.core.protocol_client import DiagnosisProtocolClient
from car_expert.core.transcript import Transcript
from car_expert.errors import (
    AuthenticationExpired,
    MalformedResponse,
    TransportFailure,
    ValidationRejected,
)
from car_expert.persistence import SessionArchive
from car_expert.results import HistoryResult, IllegalCommand, SessionReset, TurnResult
from car_expert.utils.authority_client import SessionAuthorityClient, build_http
from car_expert.utils.credentials import StaticCredentials

logger = logging.getLogger(__name__)

# Users whose managers stay resident; the least recently seen is evicted
MAX_ACTIVE_USERS = 256


class ManagerRegistry:
    """
    One DiagnosticManager per bearer token, bounded in size.

    Every manager talks through the same httpx.Client; only the
    credentials differ. Evicting a manager abandons its active session.
    """

    def __init__(self, config, http, archive=None, capacity=MAX_ACTIVE_USERS):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.config = config
        self.http = http
        self.archive = archive
        self.capacity = capacity
        self._managers = OrderedDict()
        self._lock = threading.Lock()

    def get(self, token):
        """Manager for token, created on first use"""
        evicted = []
        with self._lock:
            manager = self._managers.get(token)
            if manager is None:
                authority = SessionAuthorityClient(self.http, StaticCredentials(token))
                manager = DiagnosticManager(
                    DiagnosisProtocolClient(authority, self.config),
                    archive=self.archive
                )
                self._managers[token] = manager
                while len(self._managers) > self.capacity:
                    evicted.append(self._managers.popitem(last=False)[1])
            else:
                self._managers.move_to_end(token)

        for old in evicted:
            old.handle(NewDiagnostic())
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle manager(s); {len(self)} resident")
        return manager

    def drop(self, token):
        """Forget token and abandon its session"""
        with self._lock:
            manager = self._managers.pop(token, None)
        if manager is not None:
            manager.handle(NewDiagnostic())

    def close(self):
        self.http.close()

    def __len__(self):
        with self._lock:
            return len(self._managers)


def _bearer_token():
    """Token from the Authorization header, or None"""
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def _json_object():
    """Request body as a dict ({} when empty), or None when it is not an object"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def _unprocessable(message):
    return jsonify({'success': False, 'error': message}), 422


def _view_payload(view):
    """SessionView as JSON, transcript rendered by the Transcript model"""
    payload = view.to_dict()
    payload['transcript'] = list(Transcript(view.transcript).to_renderable())
    return payload


def _result_payload(result):
    """Render a manager result as (payload, status)"""
    if isinstance(result, IllegalCommand):
        return {
            'success': False,
            'error': result.reason,
            'command': result.command_type
        }, 409

    if isinstance(result, TurnResult):
        return {
            'success': True,
            'superseded': result.superseded,
            'concluded': result.concluded,
            'session': _view_payload(result.view)
        }, 200

    if isinstance(result, HistoryResult):
        return {
            'success': True,
            'source': result.source,
            'sessions': [_view_payload(view) for view in result.sessions]
        }, 200

    if isinstance(result, SessionReset):
        return {
            'success': True,
            'previous_session_id': result.previous_session_id
        }, 200

    raise TypeError(f"Unexpected result type: {type(result).__name__}")


def create_app(config=None, transport=None, archive=None, max_users=MAX_ACTIVE_USERS):
    """
    Build the Flask app.

    Args:
        config: AuthorityConfig (defaults to AuthorityConfig.from_env())
        transport: Optional httpx transport for Authority calls (tests)
        archive: Optional SessionArchive for concluded sessions
        max_users: Managers kept resident before the oldest is evicted
    """
    app = Flask(__name__)
    config = config or AuthorityConfig.from_env()

    registry = ManagerRegistry(config, build_http(config, transport), archive=archive, capacity=max_users)
    app.extensions['car_expert'] = registry

    def run(command):
        token = _bearer_token()
        if token is None:
            return jsonify({'success': False, 'error': 'Missing bearer token'}), 401

        try:
            payload, status = _result_payload(registry.get(token).handle(command))
            return jsonify(payload), status

        except AuthenticationExpired as e:
            registry.drop(token)
            return jsonify({'success': False, 'error': str(e)}), 401

        except ValidationRejected as e:
            return jsonify({'success': False, 'error': str(e), 'detail': e.detail}), 422

        except (MalformedResponse, TransportFailure) as e:
            logger.error(f"Session Authority failure: {e}")
            return jsonify({'success': False, 'error': str(e)}), 502

    @app.route('/api/diagnostic/types', methods=['GET'])
    def diagnostic_types():
        """Known diagnostic types"""
        return jsonify({
            'required': config.require_diagnostic_type,
            'types': [
                {'value': value, 'label': label}
                for value, label in config.diagnostic_types.items()
            ]
        })

    @app.route('/api/diagnostic/start', methods=['POST'])
    def start_diagnostic():
        """Start new diagnostic session"""
        data = _json_object()
        if data is None:
            return _unprocessable("Request body must be a JSON object")
        diagnostic_type = data.get('diagnostic_type')
        if diagnostic_type is not None and not isinstance(diagnostic_type, str):
            return _unprocessable("Field 'diagnostic_type' must be a string")
        return run(StartDiagnostic(diagnostic_type=diagnostic_type or None))

    @app.route('/api/diagnostic/answer', methods=['POST'])
    def submit_answer():
        """Submit yes/no answer and get next question or result"""
        data = _json_object()
        if data is None:
            return _unprocessable("Request body must be a JSON object")
        answer = data.get('answer')
        if not isinstance(answer, str):
            return _unprocessable("Field 'answer' is required")
        session_id = data.get('session_id')
        if session_id is not None and not isinstance(session_id, str):
            return _unprocessable("Field 'session_id' must be a string")
        return run(SubmitAnswer(answer=answer, session_id=session_id))

    @app.route('/api/diagnostic/new', methods=['POST'])
    def new_diagnostic():
        """Abandon the active session"""
        return run(NewDiagnostic())

    @app.route('/api/diagnostic/history', methods=['GET'])
    def history():
        """Stored sessions as reconstructed views"""
        return run(FetchHistory(source=request.args.get('source', HISTORY_SOURCE_AUTHORITY)))

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = AuthorityConfig.from_env()
    app = create_app(config, archive=SessionArchive(config.archive_dir))

    print("\n" + "="*60)
    print("CAR EXPERT SYSTEM - WEB GATEWAY")
    print("="*60)
    print(f"\nSession Authority: {config.base_url}")
    print("Gateway listening on: http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    try:
        app.run(debug=False, host='0.0.0.0', port=5000)
    finally:
        app.extensions['car_expert'].close()
