# tests/test_filesystem.py

import os
import stat
import sys

import pytest

from smart_transfer.core.errors import ListingError
from smart_transfer.core.filesystem import LocalFileSystem, RemoteSession, format_permissions
from smart_transfer.core.models import EntryKind
from smart_transfer.core.sftp_session import SftpSession


@pytest.fixture
def fs():
    return LocalFileSystem()


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "a.txt").write_bytes(b"hello")
    (tmp_path / "b.bin").write_bytes(b"\x00" * 300)
    (tmp_path / ".hidden").write_text("x")
    return tmp_path


def test_adapters_satisfy_the_session_contract(fs):
    assert isinstance(fs, RemoteSession)
    assert isinstance(SftpSession("example.org"), RemoteSession)


def test_list_returns_entries_with_metadata(fs, tree):
    entries = {e.name: e for e in fs.list(str(tree))}
    assert set(entries) == {"docs", "b.bin", ".hidden"}
    assert entries["docs"].kind is EntryKind.DIRECTORY
    assert entries["docs"].size == 0
    assert entries["b.bin"].kind is EntryKind.FILE
    assert entries["b.bin"].size == 300
    assert entries["b.bin"].path == str(tree / "b.bin")
    assert entries[".hidden"].is_hidden


def test_list_missing_directory_raises_listing_error(fs, tree):
    with pytest.raises(ListingError) as excinfo:
        fs.list(str(tree / "nope"))
    assert excinfo.value.path == str(tree / "nope")
    assert excinfo.value.reason == "path not found"


def test_list_a_file_raises_listing_error(fs, tree):
    with pytest.raises(ListingError, match="not a directory"):
        fs.list(str(tree / "b.bin"))


def test_stat_file(fs, tree):
    entry = fs.stat(str(tree / "docs" / "a.txt"))
    assert entry.name == "a.txt"
    assert entry.size == 5


def test_read_chunked_yields_ordered_chunks(fs, tree):
    chunks = list(fs.read_chunked(str(tree / "b.bin"), chunk_size=128))
    assert [len(c) for c in chunks] == [128, 128, 44]


def test_write_chunked_creates_parents(fs, tmp_path):
    target = tmp_path / "deep" / "er" / "file.bin"
    with fs.write_chunked(str(target)) as sink:
        sink.write(b"abc")
        sink.write(b"def")
    assert target.read_bytes() == b"abcdef"


def test_mutations_tolerate_existing_and_missing(fs, tree):
    fs.mkdir(str(tree / "docs"))
    fs.mkdir(str(tree / "new" / "nested"))
    assert (tree / "new" / "nested").is_dir()

    fs.remove(str(tree / "b.bin"))
    fs.remove(str(tree / "b.bin"))
    assert not (tree / "b.bin").exists()

    fs.remove_directory(str(tree / "docs"))
    fs.remove_directory(str(tree / "docs"))
    assert not (tree / "docs").exists()


def test_path_helpers(fs, tree):
    joined = fs.join(str(tree), "docs", "a.txt")
    assert joined == os.path.join(str(tree), "docs", "a.txt")
    assert fs.parent(joined) == str(tree / "docs")


def test_format_permissions():
    assert format_permissions(stat.S_IFDIR | 0o755) == "755"
    assert format_permissions(stat.S_IFREG | 0o4644) == "644"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_unreadable_directory_raises_listing_error(fs, tmp_path):
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0)
    try:
        if os.access(locked, os.R_OK):
            pytest.skip("running with privileges that bypass permission bits")
        with pytest.raises(ListingError, match="permission denied"):
            fs.list(str(locked))
    finally:
        locked.chmod(0o755)
