"""
Transcript - ordered, append-only log of session turns

The transcript is the sole source of truth for re-rendering a session,
live or historical. Turns are immutable and are never removed, edited
or reordered once appended.
"""

from typing import Dict, Iterable, List, Tuple

from car_expert.contracts import Turn


class Transcript:
    """
    Append-only sequence of Turn objects.

    Not thread-safe on its own; DiagnosticSession serializes access.
    """

    def __init__(self, turns: Iterable[Turn] = ()):
        self._turns: List[Turn] = list(turns)

    def append(self, turn: Turn) -> None:
        """Add turn at the end. No content validation."""
        self._turns.append(turn)

    def extend(self, turns: Iterable[Turn]) -> None:
        """Append several turns in order (used for one atomic exchange)."""
        self._turns.extend(turns)

    def to_renderable(self) -> Tuple[Dict[str, str], ...]:
        """
        Ordered display sequence.

        Idempotent and side-effect free: every call returns fresh dicts,
        so callers cannot reach back into the transcript.
        """
        return tuple(turn.to_dict() for turn in self._turns)

    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __repr__(self) -> str:
        return f"Transcript(turns={len(self._turns)})"
