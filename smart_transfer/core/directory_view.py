# smart_transfer/core/directory_view.py

"""
Visibility filtering and ordering for one side's directory listing.

Every function in this module is pure: it never touches the filesystem and
never mutates its input, it only returns a new list.
"""

import locale
import re
import unicodedata
from typing import Iterable, List

from .models import FileEntry, ListingOptions, SortDirection, SortKey

# Splits "file10.txt" into ['file', '10', '.txt'] so digit runs can be
# compared as numbers.
_DIGIT_RUN = re.compile(r"(\d+)")


def _fold(text: str) -> str:
    """Case- and accent-insensitive form of a name fragment."""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def natural_key(name: str) -> tuple:
    """
    Builds a sort key that orders names the way a person reads them.

    Digit runs compare by numeric value ("file2" < "file10"), text compares
    case-insensitively through the active locale's collation.

    Example:
        sorted(["file10", "File2", "file1"], key=natural_key)
        -> ['file1', 'File2', 'file10']
    """
    key = []
    for part in _DIGIT_RUN.split(name):
        if not part:
            continue
        if part.isdigit():
            # The leading 0 keeps numbers and text from ever being compared directly.
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, locale.strxfrm(_fold(part))))
    return tuple(key)


def _name_key(entry: FileEntry) -> tuple:
    return natural_key(entry.name)


def _modified_key(entry: FileEntry) -> float:
    return entry.modified_at.timestamp()


def filter_entries(entries: Iterable[FileEntry], show_hidden: bool) -> List[FileEntry]:
    """Removes hidden entries unless show_hidden is set."""
    if show_hidden:
        return list(entries)
    return [entry for entry in entries if not entry.is_hidden]


def order_entries(
        entries: Iterable[FileEntry],
        sort_key: SortKey = SortKey.NAME,
        direction: SortDirection = SortDirection.ASC,
) -> List[FileEntry]:
    """
    Orders entries with directories always first.

    Within each kind the entries are compared by the chosen key. A descending
    order only reverses that comparison; directories stay ahead of files and
    equal keys keep their original relative order.

    Args:
        entries: The listing to order.
        sort_key: SortKey.NAME (natural order) or SortKey.MODIFIED_AT.
        direction: SortDirection.ASC or SortDirection.DESC.

    Returns:
        A new, ordered list.
    """
    key_func = _name_key if sort_key is SortKey.NAME else _modified_key
    reverse = direction is SortDirection.DESC

    entries = list(entries)
    directories = [entry for entry in entries if entry.is_dir]
    files = [entry for entry in entries if not entry.is_dir]

    # list.sort stays stable with reverse=True, so ties keep their original order.
    directories.sort(key=key_func, reverse=reverse)
    files.sort(key=key_func, reverse=reverse)

    return directories + files


def process_entries(entries: Iterable[FileEntry], options: ListingOptions) -> List[FileEntry]:
    """Applies filter_entries and then order_entries with the given options."""
    visible = filter_entries(entries, options.show_hidden)
    return order_entries(visible, options.sort_key, options.direction)
