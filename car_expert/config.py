"""
Deployment configuration for the diagnostic client.

Hardcoded defaults with environment variable overrides. Whether a
diagnostic type must be chosen before start is a deployment decision,
so it lives here rather than in the protocol client.

Usage:
    from car_expert.config import AuthorityConfig

    config = AuthorityConfig.from_env()
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0
DEFAULT_ARCHIVE_DIR = "outputs/sessions"

# Domains offered by the Car Expert front end: wire value -> display label
DEFAULT_DIAGNOSTIC_TYPES = {
    'brake': 'Brakes',
    'start': 'Starting',
    'sound': 'Strange Sounds',
}

_TRUE_STRINGS = {'1', 'true', 'yes', 'on'}
_FALSE_STRINGS = {'0', 'false', 'no', 'off'}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class AuthorityConfig:
    """
    Settings for talking to the Session Authority.

    Attributes:
        base_url: Root URL of the Authority's API
        timeout: Per-request timeout in seconds
        require_diagnostic_type: Reject start() locally when no type is given.
            False for deployments where the server picks a default domain.
        diagnostic_types: Known types (wire value -> label). Empty mapping
            disables the local membership check.
        archive_dir: Directory for the local SessionArchive
    """
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    require_diagnostic_type: bool = True
    diagnostic_types: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_DIAGNOSTIC_TYPES)
    )
    archive_dir: str = DEFAULT_ARCHIVE_DIR

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "AuthorityConfig":
        """
        Build config from defaults plus environment overrides.

        Recognised variables:
            CAR_EXPERT_API_URL, CAR_EXPERT_TIMEOUT,
            CAR_EXPERT_REQUIRE_TYPE, CAR_EXPERT_ARCHIVE_DIR

        Raises:
            ValueError: If a variable is present but unparseable
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get('CAR_EXPERT_API_URL'):
            kwargs['base_url'] = env['CAR_EXPERT_API_URL'].rstrip('/')

        if env.get('CAR_EXPERT_TIMEOUT'):
            try:
                kwargs['timeout'] = float(env['CAR_EXPERT_TIMEOUT'])
            except ValueError:
                raise ValueError(
                    f"CAR_EXPERT_TIMEOUT must be a number, got {env['CAR_EXPERT_TIMEOUT']!r}"
                )

        if env.get('CAR_EXPERT_REQUIRE_TYPE'):
            kwargs['require_diagnostic_type'] = _parse_bool(
                'CAR_EXPERT_REQUIRE_TYPE', env['CAR_EXPERT_REQUIRE_TYPE']
            )

        if env.get('CAR_EXPERT_ARCHIVE_DIR'):
            kwargs['archive_dir'] = env['CAR_EXPERT_ARCHIVE_DIR']

        config = cls(**kwargs)
        logger.info(
            f"Config loaded: base_url={config.base_url}, timeout={config.timeout}, "
            f"require_diagnostic_type={config.require_diagnostic_type}"
        )
        return config

    def label_for(self, diagnostic_type: Optional[str]) -> Optional[str]:
        """Display label for a type, or None when unknown/absent."""
        if diagnostic_type is None:
            return None
        return self.diagnostic_types.get(diagnostic_type)
