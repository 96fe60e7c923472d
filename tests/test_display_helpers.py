"""
Tests for console display helpers
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from car_expert.contracts import (
    Answer,
    ConversationStep,
    DiagnosticResult,
    HistoryRecord,
    Speaker,
    Turn,
)
from car_expert.core.history import reconstruct_session
from car_expert.utils.display_helpers import (
    format_history_detail,
    format_history_summary,
    format_turn,
)


RECORD = HistoryRecord(
    session_id='12',
    conversation=(ConversationStep('Do the brakes squeal?', Answer.YES),),
    result=DiagnosticResult(
        most_probable_problem='Worn brake pads',
        probabilities=(('Worn brake pads', 0.62), ('Air in brake lines', 0.38)),
        narrative='Inspect pads.',
    ),
)


def test_format_turn_prefixes():
    assert format_turn(Turn(Speaker.SYSTEM, "Q1")) == "Bot: Q1"
    assert format_turn(Turn(Speaker.USER, "Yes")) == "You: Yes"


def test_format_turn_indents_continuation_lines():
    assert format_turn(Turn(Speaker.SYSTEM, "a\n\nb")) == "Bot: a\n\n     b"


def test_history_summary():
    assert format_history_summary(reconstruct_session(RECORD)) == "Diagnosis #12: Worn brake pads"


def test_history_detail():
    text = format_history_detail(reconstruct_session(RECORD))

    assert "  Q: Do the brakes squeal?" in text
    assert "  A: Yes" in text
    assert "  Inspect pads." in text
    assert text.index("Worn brake pads     62.0%") < text.index("Air in brake lines  38.0%")
