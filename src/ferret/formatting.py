from __future__ import annotations


def human_bytes(n: int) -> str:
    v = float(n)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if v < 1024.0:
            return f"{v:.1f}{unit}" if unit != "B" else f"{int(v)}B"
        v /= 1024.0
    return f"{v:.1f}PB"


def format_elapsed(seconds: float) -> str:
    s = max(0, int(seconds))
    if s < 60:
        return f"{s}s ago"
    m, s = divmod(s, 60)
    if m < 60:
        return f"{m}m ago"
    h, m = divmod(m, 60)
    if h < 24:
        return f"{h}h{m:02d}m ago"
    d, h = divmod(h, 24)
    return f"{d}d{h:02d}h ago"


def make_bar(value: int, total: int, width: int = 30) -> str:
    if total <= 0:
        return ""
    filled = int(value / total * width)
    return "#" * filled + "." * (width - filled)


_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}


def parse_size(text: str) -> int:
    """Parse ``500``, ``500K``, ``1.5M`` or ``2GB`` into bytes (binary units)."""
    s = text.strip().upper()
    if s.endswith("B"):
        s = s[:-1]
    unit = s[-1:] if s[-1:] in _SIZE_UNITS else ""
    number = s[: len(s) - len(unit)]
    try:
        value = float(number)
    except ValueError:
        raise ValueError(f"invalid size: {text!r}") from None
    if not 0 <= value < float("inf"):
        raise ValueError(f"invalid size: {text!r}")
    return int(value * _SIZE_UNITS[unit])
