# smart_transfer/utils/formatting.py

from typing import List, Tuple

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: float) -> str:
    """Human readable size on a 1024 base, e.g. 0 -> '0 B', 1536 -> '1.5 KB'."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in _BYTE_UNITS:
        if value < 1024 or unit == _BYTE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"


def format_speed(bytes_per_second: float) -> str:
    if bytes_per_second <= 0:
        return ""
    return f"{format_bytes(bytes_per_second)}/s"


def format_eta(seconds: float | None) -> str:
    """Coarse remaining time: '42s' below a minute, '3m' below an hour, then '2h'. Empty when unknown."""
    if seconds is None or seconds < 0:
        return ""
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    return f"{round(seconds / 3600)}h"


def path_segments(path: str) -> List[Tuple[str, str]]:
    """
    Splits a POSIX path into breadcrumb segments.

    Each segment is (label, full path up to and including it), starting with
    the root. For example '/var/log' gives
    [('/', '/'), ('var', '/var'), ('log', '/var/log')].
    """
    segments = [("/", "/")]
    current = ""
    for part in path.split("/"):
        if not part:
            continue
        current = f"{current}/{part}"
        segments.append((part, current))
    return segments
