"""
Tests for AuthorityConfig environment overrides
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from car_expert.config import DEFAULT_BASE_URL, AuthorityConfig


def test_defaults():
    config = AuthorityConfig.from_env({})

    assert config.base_url == DEFAULT_BASE_URL
    assert config.timeout == 30.0
    assert config.require_diagnostic_type is True
    assert list(config.diagnostic_types) == ['brake', 'start', 'sound']


def test_overrides():
    config = AuthorityConfig.from_env({
        'CAR_EXPERT_API_URL': 'https://api.example.com/',
        'CAR_EXPERT_TIMEOUT': '5',
        'CAR_EXPERT_REQUIRE_TYPE': 'false',
        'CAR_EXPERT_ARCHIVE_DIR': '/tmp/archive',
    })

    assert config.base_url == 'https://api.example.com'
    assert config.timeout == 5.0
    assert config.require_diagnostic_type is False
    assert config.archive_dir == '/tmp/archive'


def test_bad_timeout():
    with pytest.raises(ValueError, match="CAR_EXPERT_TIMEOUT"):
        AuthorityConfig.from_env({'CAR_EXPERT_TIMEOUT': 'soon'})


def test_bad_bool():
    with pytest.raises(ValueError, match="CAR_EXPERT_REQUIRE_TYPE"):
        AuthorityConfig.from_env({'CAR_EXPERT_REQUIRE_TYPE': 'sometimes'})


def test_label_for():
    config = AuthorityConfig()

    assert config.label_for('sound') == 'Strange Sounds'
    assert config.label_for('transmission') is None
    assert config.label_for(None) is None
