"""
Local archive of concluded diagnostic sessions.

Write-once JSON files, one per session, in the same shape the Session
Authority serves from its sessions list. The Authority remains the
owner of session storage; this archive is an optional local copy that
history reconstruction can read when the Authority is unreachable.
"""

import json
import logging
from pathlib import Path
from typing import List

from car_expert.contracts import (
    Answer,
    ConversationStep,
    HistoryRecord,
    SessionState,
    SessionView,
    Speaker,
)
from car_expert.core.response_parser import parse_history_record

logger = logging.getLogger(__name__)


def record_from_view(view: SessionView) -> HistoryRecord:
    """
    Convert a concluded live session view into a storable record.

    Pairs each system question with the user answer that follows it.

    Raises:
        ValueError: If the session is not concluded
    """
    if view.state != SessionState.CONCLUDED or view.result is None:
        raise ValueError(f"Only concluded sessions can be archived (state={view.state.value})")

    steps = []
    # Final turn is the rendered result; everything before it alternates Q/A
    exchange_turns = view.transcript[:-1]
    for question_turn, answer_turn in zip(exchange_turns[0::2], exchange_turns[1::2]):
        if question_turn.speaker != Speaker.SYSTEM or answer_turn.speaker != Speaker.USER:
            raise ValueError(f"Transcript of session {view.session_id} is not question/answer ordered")
        steps.append(ConversationStep(
            question=question_turn.content,
            answer=Answer(answer_turn.content.lower()),
        ))

    return HistoryRecord(
        session_id=view.session_id,
        conversation=tuple(steps),
        result=view.result,
        diagnostic_type=view.diagnostic_type,
    )


class SessionArchive:
    """
    Manages write-once session files.

    Layout:
        outputs/sessions/
            SESSION-abc123.json
            SESSION-def456.json
            ...

    Design:
    - Write-once (never overwrite)
    - One file per concluded session
    - Same JSON shape as the Authority's sessions list
    """

    def __init__(self, base_dir: str = "outputs/sessions"):
        """
        Initialize archive.

        Args:
            base_dir: Directory for all archived sessions
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"SessionArchive initialized: {self.base_dir}")

    def _path_for(self, session_id: str) -> Path:
        return self.base_dir / f"SESSION-{session_id}.json"

    def save(self, record: HistoryRecord) -> str:
        """
        Archive one concluded session.

        Args:
            record: Session to store

        Returns:
            str: Absolute path to saved file

        Raises:
            FileExistsError: If the session was already archived
        """
        filepath = self._path_for(record.session_id)

        # Session data is write-once
        if filepath.exists():
            raise FileExistsError(
                f"Session file already exists: {filepath}. "
                f"Concluded sessions are archived once."
            )

        with open(filepath, 'w') as f:
            json.dump(record.to_wire(), f, indent=2, ensure_ascii=False)

        abs_path = str(filepath.absolute())
        logger.info(f"Archived session {record.session_id}: {filepath.name}")

        return abs_path

    def load_all(self) -> List[HistoryRecord]:
        """Load every archived session, ordered by file name."""
        records = []
        for filepath in sorted(self.base_dir.glob("SESSION-*.json"), key=lambda p: p.name):
            with open(filepath, 'r') as f:
                records.append(parse_history_record(json.load(f)))

        logger.info(f"Loaded {len(records)} archived sessions from {self.base_dir}")
        return records
