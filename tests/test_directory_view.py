# tests/test_directory_view.py

from datetime import datetime, timedelta

import pytest

from smart_transfer.core.directory_view import filter_entries, natural_key, order_entries, process_entries
from smart_transfer.core.models import EntryKind, FileEntry, ListingOptions, SortDirection, SortKey

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


def entry(name, kind=EntryKind.FILE, minutes=0, hidden_flag=False):
    return FileEntry(
        name=name,
        kind=kind,
        size=0 if kind is EntryKind.DIRECTORY else 10,
        permissions="644",
        modified_at=BASE_TIME + timedelta(minutes=minutes),
        path=f"/data/{name}",
        hidden_flag=hidden_flag,
    )


def directory(name, minutes=0):
    return entry(name, EntryKind.DIRECTORY, minutes)


def names(entries):
    return [e.name for e in entries]


@pytest.fixture
def mixed_listing():
    return [
        entry("file10", minutes=3),
        directory("zeta", minutes=1),
        entry(".bashrc", minutes=5),
        entry("file2", minutes=1),
        directory(".cache", minutes=9),
        entry("file1", minutes=2),
        directory("Alpha", minutes=4),
        entry("desktop.ini", hidden_flag=True),
    ]


# --- Natural ordering ---

def test_name_order_is_numeric_aware():
    ordered = order_entries([entry("file2"), entry("file10"), entry("file1")])
    assert names(ordered) == ["file1", "file2", "file10"]


def test_name_order_ignores_case():
    ordered = order_entries([entry("beta"), entry("Alpha"), entry("alpha2"), entry("Beta1")])
    assert names(ordered) == ["Alpha", "alpha2", "beta", "Beta1"]


def test_natural_key_ignores_accents():
    assert natural_key("résumé") == natural_key("resume")


def test_natural_key_separates_numbers_from_text():
    # "10" must sort before "a" without comparing an int with a string.
    assert sorted(["a", "10", "9"], key=natural_key) == ["9", "10", "a"]


# --- Directories first ---

def test_directories_precede_files_in_both_directions(mixed_listing):
    for direction in SortDirection:
        for sort_key in SortKey:
            ordered = order_entries(mixed_listing, sort_key, direction)
            kinds = [e.kind for e in ordered]
            first_file = kinds.index(EntryKind.FILE)
            assert EntryKind.DIRECTORY not in kinds[first_file:]


def test_descending_reverses_only_within_each_kind(mixed_listing):
    ordered = process_entries(mixed_listing, ListingOptions(direction=SortDirection.DESC))
    assert names(ordered) == ["zeta", "Alpha", "file10", "file2", "file1"]


def test_sort_by_modified_time():
    listing = [entry("late", minutes=10), entry("early", minutes=1), entry("middle", minutes=5)]
    assert names(order_entries(listing, SortKey.MODIFIED_AT)) == ["early", "middle", "late"]
    assert names(order_entries(listing, SortKey.MODIFIED_AT, SortDirection.DESC)) == ["late", "middle", "early"]


def test_equal_keys_keep_their_relative_order():
    first = entry("same", minutes=1)
    second = FileEntry("same", EntryKind.FILE, 99, "600", first.modified_at, "/other/same")
    assert order_entries([first, second]) == [first, second]
    assert order_entries([second, first], SortKey.MODIFIED_AT, SortDirection.DESC) == [second, first]


# --- Visibility ---

def test_hidden_entries_are_filtered_unless_requested(mixed_listing):
    visible = filter_entries(mixed_listing, show_hidden=False)
    assert ".bashrc" not in names(visible)
    assert ".cache" not in names(visible)
    assert "desktop.ini" not in names(visible)  # hidden by attribute, not by name
    assert len(filter_entries(mixed_listing, show_hidden=True)) == len(mixed_listing)


def test_process_combines_filter_and_order(mixed_listing):
    result = process_entries(mixed_listing, ListingOptions())
    assert names(result) == ["Alpha", "zeta", "file1", "file2", "file10"]


def test_process_is_idempotent(mixed_listing):
    for options in (ListingOptions(), ListingOptions(True, SortKey.MODIFIED_AT, SortDirection.DESC)):
        once = process_entries(mixed_listing, options)
        assert process_entries(once, options) == once


def test_process_does_not_mutate_input(mixed_listing):
    original = list(mixed_listing)
    process_entries(mixed_listing, ListingOptions(show_hidden=True))
    assert mixed_listing == original


def test_empty_listing():
    assert process_entries([], ListingOptions()) == []


# --- Entry validation ---

@pytest.mark.parametrize("bad_name", ["", "a/b", "/"])
def test_entry_rejects_names_with_slashes(bad_name):
    with pytest.raises(ValueError):
        entry(bad_name)


def test_entry_allows_backslash_in_name():
    assert entry("a\\b.txt").name == "a\\b.txt"


def test_entry_rejects_negative_size():
    with pytest.raises(ValueError):
        FileEntry("x", EntryKind.FILE, -1, "644", BASE_TIME, "/x")
