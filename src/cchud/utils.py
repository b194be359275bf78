"""Path compression and display formatting helpers."""

from pathlib import Path

DEFAULT_PATH_MAX_LEN = 50

_SPARK_CHARS = "▁▂▃▄▅▆▇█"


def _home() -> str:
    return str(Path.home())


def compress_path(path: str, max_len: int = DEFAULT_PATH_MAX_LEN) -> str:
    """Shorten a path for a table cell.

    The home directory becomes ``~``; anything still longer than ``max_len``
    loses its leading part, since the file name is at the end.
    """
    if not path:
        return ""
    home = _home()
    short = "~" + path.removeprefix(home) if path.startswith(home) else path
    if len(short) > max_len:
        short = "..." + short[3 - max_len :]
    return short


def compress_paths_in_text(text: str) -> str:
    """Replace every occurrence of the home directory in ``text`` with ``~``."""
    return text.replace(_home(), "~") if text else ""


def _trim_decimal(value: float) -> str:
    return f"{value:.1f}".removesuffix(".0")


def format_token_count(count: int) -> str:
    """Format a token count for display.

    Args:
        count: Number of tokens.

    Returns:
        Formatted string like "500", "1.5k", "150k" or "1.5M".
    """
    if count >= 1_000_000:
        return f"{_trim_decimal(count / 1_000_000)}M"
    if count >= 10_000:
        return f"{round(count / 1_000)}k"
    if count >= 1_000:
        return f"{_trim_decimal(count / 1_000)}k"
    return str(count)


def format_duration(seconds: float | None) -> str:
    """Format a duration in seconds for display."""
    if seconds is None:
        return "…"
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    mins, secs = divmod(int(seconds), 60)
    if mins < 60:
        return f"{mins}m {secs}s"
    hours, mins = divmod(mins, 60)
    return f"{hours}h {mins}m"


def format_cost(amount: float) -> str:
    """Format a USD amount, keeping sub-cent precision for small sessions."""
    if amount < 0.01:
        return f"${amount:.4f}"
    return f"${amount:.2f}"


def sparkline(values: list[int] | tuple[int, ...], width: int = 30) -> str:
    """Render the trailing values as a unicode sparkline.

    Args:
        values: Samples in chronological order.
        width: Maximum number of characters; older samples are dropped.

    Returns:
        Sparkline string, empty when there are no samples.
    """
    samples = list(values)[-width:]
    if not samples:
        return ""
    low = min(samples)
    span = max(samples) - low
    if span == 0:
        return _SPARK_CHARS[0] * len(samples)
    top = len(_SPARK_CHARS) - 1
    return "".join(_SPARK_CHARS[round((value - low) / span * top)] for value in samples)
