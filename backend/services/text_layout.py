"""
Text layout helpers: greedy word wrap and line clamping.

Both functions are pure and only depend on a measure(text) -> width
callable, so they can be tested without fonts.
"""
import datetime
from typing import Callable, List, Optional, Sequence

Measure = Callable[[str], float]

ELLIPSIS = "..."


def wrap_to_width(text: str, max_width: float, measure: Measure) -> List[str]:
    """
    Greedy word wrap.

    A token wider than max_width on its own stays on its own line, unsplit.
    """
    lines: List[str] = []
    line = ""
    for word in text.split():
        candidate = f"{line} {word}" if line else word
        if measure(candidate) > max_width and line:
            lines.append(line)
            line = word
        else:
            line = candidate
    if line:
        lines.append(line)
    return lines


def clamp_lines(lines: Sequence[str], max_lines: int) -> List[str]:
    """Keep at most max_lines; the last kept line loses trailing periods and gains an ellipsis."""
    if len(lines) <= max_lines:
        return list(lines)
    if max_lines <= 0:
        return []
    trimmed = list(lines[:max_lines])
    trimmed[-1] = trimmed[-1].rstrip(".") + ELLIPSIS
    return trimmed


def layout_text_block(text: str, max_width: float, max_lines: int, measure: Measure) -> List[str]:
    return clamp_lines(wrap_to_width(text, max_width, measure), max_lines)


def fit_font_size(
    text: str,
    max_width: float,
    size: float,
    min_size: float,
    measure_at: Callable[[float, str], float],
    step: float = 2.0,
) -> float:
    """Shrink size in steps until text fits max_width or min_size is reached."""
    current = size
    while measure_at(current, text) > max_width and current > min_size:
        current = max(min_size, current - step)
    return current


def format_date_tag(value: Optional[datetime.date]) -> str:
    """Short display date for tag chips, e.g. "Mar 5, 2025"."""
    if value is None:
        return ""
    return f"{value.strftime('%b')} {value.day}, {value.year}"
