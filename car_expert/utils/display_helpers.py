"""
Display Helpers - Convert session views to human-readable text

Used by the console harness. Works only on SessionView snapshots, never
on live session objects.
"""

from typing import List

from car_expert.contracts import SessionView, Speaker, Turn
from car_expert.core.result_formatter import format_percentage


# Speaker -> prefix shown in the console
SPEAKER_LABELS = {
    Speaker.SYSTEM: 'Bot',
    Speaker.USER: 'You',
}


def format_turn(turn: Turn) -> str:
    """
    Prefix a turn with its speaker. Multi-line content is indented under
    the prefix.
    """
    prefix = f"{SPEAKER_LABELS[turn.speaker]}: "
    lines = turn.content.split("\n")
    indent = " " * len(prefix)
    return "\n".join([prefix + lines[0]] + [indent + line if line else "" for line in lines[1:]])


def format_history_summary(view: SessionView) -> str:
    """
    One-line entry for a history list.

    Examples:
        'Diagnosis #12: Worn brake pads'
    """
    problem = view.result.most_probable_problem if view.result else "(no result)"
    return f"Diagnosis #{view.session_id}: {problem}"


def format_history_detail(view: SessionView) -> str:
    """
    Expanded history entry: Q/A pairs, then narrative and probabilities.
    """
    lines: List[str] = [format_history_summary(view), "", "Conversation"]

    turns = view.transcript[:-1] if view.result else view.transcript
    for turn in turns:
        tag = "Q" if turn.speaker == Speaker.SYSTEM else "A"
        lines.append(f"  {tag}: {turn.content}")

    if view.result:
        lines.extend(["", "Detailed Result", f"  {view.result.narrative}"])
        width = max((len(label) for label, _ in view.result.probabilities), default=0)
        for label, probability in view.result.probabilities:
            lines.append(f"  {label.ljust(width)}  {format_percentage(probability)}%")

    return "\n".join(lines)
