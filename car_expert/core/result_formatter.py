"""
Result Formatter - renders a DiagnosticResult into transcript text

Pure function: same DiagnosticResult in, same string out. Used for the
final turn of live sessions and for reconstructed historical sessions,
so both render identically.

Layout:
    Diagnosis Result:

    Most probable problem: <label>

    <narrative>

    Probabilities:
    <label>: <pct>%
    ...

Probabilities are rendered in the order received, never re-sorted.
"""

from decimal import Decimal, ROUND_HALF_UP

from car_expert.contracts import DiagnosticResult

RESULT_HEADER = "Diagnosis Result:"
PROBABLE_PROBLEM_PREFIX = "Most probable problem: "
PROBABILITIES_HEADER = "Probabilities:"

_ONE_DECIMAL = Decimal("0.1")


def format_percentage(probability: float) -> str:
    """
    Fraction -> percentage text with one decimal, rounded half-up.

    Goes through repr() so binary float noise does not affect rounding:
    0.0005 renders as '0.1', not '0.0'.

    Examples:
        >>> format_percentage(0.62)
        '62.0'
        >>> format_percentage(0.12345)
        '12.3'
        >>> format_percentage(0.00125)
        '0.1'
    """
    percent = Decimal(repr(float(probability))) * 100
    return str(percent.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def format_probability_line(label: str, probability: float) -> str:
    return f"{label}: {format_percentage(probability)}%"


def format_result(result: DiagnosticResult) -> str:
    """
    Render the final system turn for a concluded session.

    Args:
        result: Structured result from the Session Authority

    Returns:
        str: Multi-line rendering (see module docstring)
    """
    lines = [
        RESULT_HEADER,
        "",
        f"{PROBABLE_PROBLEM_PREFIX}{result.most_probable_problem}",
        "",
        result.narrative,
        "",
        PROBABILITIES_HEADER,
    ]
    lines.extend(
        format_probability_line(label, probability)
        for label, probability in result.probabilities
    )
    return "\n".join(lines)
