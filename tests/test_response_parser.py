"""
Test Response Parser contract compliance

Verifies Session Authority payloads decode into exactly one contract
shape, and that everything else is a MalformedResponse.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from car_expert.contracts import Answer, Conclusion, NextQuestion
from car_expert.core.response_parser import (
    parse_answer,
    parse_history,
    parse_result,
    parse_start,
)
from car_expert.errors import MalformedResponse


WIRE_RESULT = {
    'most_probable_problem': 'Worn brake pads',
    'probabilities': {'Worn brake pads': 0.62, 'Air in brake lines': 0.38},
    'diagnostic_message': 'Inspect pads.',
}


# ========== Start ==========

def test_start_success():
    started = parse_start({'session_id': 'abc', 'question': 'Do the brakes squeal?'})
    assert started.session_id == 'abc'
    assert started.question == 'Do the brakes squeal?'


def test_start_integer_id_kept_as_text():
    assert parse_start({'session_id': 17, 'question': 'Q'}).session_id == '17'


@pytest.mark.parametrize("payload", [
    {'question': 'Q'},
    {'session_id': 'abc'},
    {'session_id': '', 'question': 'Q'},
    {'session_id': True, 'question': 'Q'},
    {'session_id': 'abc', 'question': None},
    ['abc', 'Q'],
    None,
])
def test_start_malformed(payload):
    with pytest.raises(MalformedResponse):
        parse_start(payload)


# ========== Answer ==========

def test_answer_next_question_branch():
    outcome = parse_answer({'question': 'Is the pedal soft?'})
    assert outcome == NextQuestion('Is the pedal soft?')


def test_answer_result_branch():
    outcome = parse_answer({'diagnostic_result': WIRE_RESULT})

    assert isinstance(outcome, Conclusion)
    assert outcome.result.most_probable_problem == 'Worn brake pads'
    assert outcome.result.narrative == 'Inspect pads.'
    assert outcome.result.probabilities == (('Worn brake pads', 0.62), ('Air in brake lines', 0.38))


def test_answer_neither_branch_is_malformed():
    with pytest.raises(MalformedResponse, match="neither"):
        parse_answer({'status': 'ok'})


def test_answer_both_branches_is_malformed():
    with pytest.raises(MalformedResponse, match="both"):
        parse_answer({'question': 'Q', 'diagnostic_result': WIRE_RESULT})


def test_answer_null_key_still_counts_as_present():
    with pytest.raises(MalformedResponse, match="both"):
        parse_answer({'question': None, 'diagnostic_result': WIRE_RESULT})


def test_answer_empty_result_object_is_not_a_question():
    """An empty result is a broken result, never a fallback to the question branch"""
    with pytest.raises(MalformedResponse):
        parse_answer({'diagnostic_result': {}})


def test_answer_non_object_payload():
    with pytest.raises(MalformedResponse):
        parse_answer("Is the pedal soft?")


# ========== Result ==========

def test_result_preserves_source_order():
    payload = dict(WIRE_RESULT, probabilities={'b': 0.1, 'a': 0.9})
    assert [label for label, _ in parse_result(payload).probabilities] == ['b', 'a']


def test_result_integer_probabilities_accepted():
    payload = dict(WIRE_RESULT, probabilities={'a': 1, 'b': 0})
    assert parse_result(payload).probabilities == (('a', 1.0), ('b', 0.0))


@pytest.mark.parametrize("probabilities", [
    {'a': 1.5},
    {'a': -0.1},
    {'a': '0.5'},
    {'a': True},
    {'a': float('nan')},
    ['a', 0.5],
])
def test_result_bad_probabilities(probabilities):
    with pytest.raises(MalformedResponse):
        parse_result(dict(WIRE_RESULT, probabilities=probabilities))


def test_result_missing_message():
    payload = {k: v for k, v in WIRE_RESULT.items() if k != 'diagnostic_message'}
    with pytest.raises(MalformedResponse):
        parse_result(payload)


# ========== History ==========

def test_history_records():
    records = parse_history([{
        'id': 3,
        'conversation': [
            {'question': 'Q1', 'answer': 'yes'},
            {'question': 'Q2', 'answer': 'No'},
        ],
        'diagnostic_result': WIRE_RESULT,
    }])

    assert len(records) == 1
    record = records[0]
    assert record.session_id == '3'
    assert [step.answer for step in record.conversation] == [Answer.YES, Answer.NO]
    assert record.result.most_probable_problem == 'Worn brake pads'
    assert record.diagnostic_type is None


def test_history_empty_list():
    assert parse_history([]) == []


def test_history_not_a_list():
    with pytest.raises(MalformedResponse):
        parse_history({'sessions': []})


def test_history_bad_answer_value():
    with pytest.raises(MalformedResponse, match="yes' or 'no"):
        parse_history([{
            'id': 1,
            'conversation': [{'question': 'Q1', 'answer': 'maybe'}],
            'diagnostic_result': WIRE_RESULT,
        }])
