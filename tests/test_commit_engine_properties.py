"""
Property-based tests for the Commit Engine.

Verifies that a commit either fully replaces the destination or leaves it
untouched, and that DNS flush failures never fail a commit.
"""

import errno
import os
import stat
import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

from hypothesis import given, settings
from hypothesis import strategies as st

from hosts_keeper.audit_logger import AuditLogger
from hosts_keeper.commit import CommitEngine, atomic_write_bytes
from hosts_keeper.domain_store import DomainStore
from hosts_keeper.enums import LogLevel
from hosts_keeper.exceptions import AtomicRenameError, DnsFlushError, IoError, PrivilegeError


def leftover_temp_files(directory: Path) -> list[str]:
    return [p.name for p in directory.iterdir() if p.name.endswith(".tmp")]


class TestAtomicWriteProperty:
    """Property-based tests for atomic replacement."""

    @given(old=st.binary(max_size=500), new=st.binary(max_size=500))
    @settings(max_examples=50)
    def test_write_replaces_content(self, old: bytes, new: bytes) -> None:
        """*For any* content, a successful write SHALL leave exactly the new bytes."""
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            destination.write_bytes(old)

            atomic_write_bytes(destination, new)

            assert destination.read_bytes() == new
            assert leftover_temp_files(Path(tmpdir)) == []

    def test_write_creates_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            atomic_write_bytes(destination, b"127.0.0.1 localhost\n")
            assert destination.read_bytes() == b"127.0.0.1 localhost\n"

    def test_permission_bits_preserved(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            destination.write_bytes(b"old\n")
            os.chmod(destination, 0o644)

            atomic_write_bytes(destination, b"new\n")

            assert stat.S_IMODE(destination.stat().st_mode) == 0o644

    def test_symlinked_destination_updates_target(self) -> None:
        """Writing through a symlink SHALL replace the linked file and keep the link."""
        with tempfile.TemporaryDirectory() as tmpdir:
            etc = Path(tmpdir) / "etc"
            store = Path(tmpdir) / "store"
            etc.mkdir()
            store.mkdir()
            real = store / "hosts-real"
            real.write_bytes(b"old\n")
            os.chmod(real, 0o644)
            link = etc / "hosts"
            link.symlink_to(os.path.join("..", "store", "hosts-real"))

            atomic_write_bytes(link, b"new\n")

            assert link.is_symlink()
            assert real.read_bytes() == b"new\n"
            assert link.read_bytes() == b"new\n"
            assert stat.S_IMODE(real.stat().st_mode) == 0o644
            assert leftover_temp_files(etc) == []
            assert leftover_temp_files(store) == []

    def test_dangling_symlink_creates_target(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            real = Path(tmpdir) / "hosts-real"
            link = Path(tmpdir) / "hosts"
            link.symlink_to(real)

            atomic_write_bytes(link, b"127.0.0.1 localhost\n")

            assert link.is_symlink()
            assert real.read_bytes() == b"127.0.0.1 localhost\n"

    @given(old=st.binary(min_size=1, max_size=300), new=st.binary(max_size=300))
    @settings(max_examples=50)
    def test_rename_failure_leaves_destination_unchanged(self, old: bytes, new: bytes) -> None:
        """
        *For any* content, if the final rename fails the destination SHALL
        keep its previous bytes and no temporary file SHALL remain.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            destination.write_bytes(old)

            with patch(
                "hosts_keeper.commit.os.replace",
                side_effect=OSError(errno.EXDEV, "Invalid cross-device link"),
            ):
                try:
                    atomic_write_bytes(destination, new)
                    assert False, "Expected AtomicRenameError"
                except AtomicRenameError as e:
                    assert e.code == "rename_failed"
                    assert e.details["path"] == str(destination)

            assert destination.read_bytes() == old
            assert leftover_temp_files(Path(tmpdir)) == []

    def test_write_failure_leaves_destination_unchanged(self) -> None:
        """A full disk while writing the temporary file SHALL raise IoError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            destination.write_bytes(b"old\n")

            with patch(
                "hosts_keeper.commit.os.fsync",
                side_effect=OSError(errno.ENOSPC, "No space left on device"),
            ):
                try:
                    atomic_write_bytes(destination, b"new\n")
                    assert False, "Expected IoError"
                except IoError as e:
                    assert e.code == "enospc"

            assert destination.read_bytes() == b"old\n"
            assert leftover_temp_files(Path(tmpdir)) == []

    def test_permission_denied_is_privilege_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            with patch(
                "hosts_keeper.commit.tempfile.mkstemp",
                side_effect=PermissionError(errno.EACCES, "Permission denied"),
            ):
                try:
                    atomic_write_bytes(destination, b"x\n")
                    assert False, "Expected PrivilegeError"
                except PrivilegeError as e:
                    assert e.code == "permission_denied"
                    assert isinstance(e, IoError)
            assert not destination.exists()


class TestCommitEngineProperty:
    """Tests for the engine's DNS flush and logging."""

    def test_commit_serializes_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            store = DomainStore()
            store.load_text("127.0.0.1 localhost\n")
            store.add("0.0.0.0", "ads.example.com")

            CommitEngine(flush_dns=False).commit(store, destination)

            assert destination.read_text() == "127.0.0.1 localhost\n0.0.0.0 ads.example.com\n"

    def test_flush_runs_after_successful_commit(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            flusher = MagicMock(return_value="resolvectl flush-caches")

            CommitEngine(dns_flusher=flusher).commit_bytes(b"x\n", destination)

            flusher.assert_called_once_with()

    def test_flush_failure_is_logged_not_raised(self) -> None:
        """A failing DNS flush SHALL be logged as a warning; the commit still succeeds."""
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            logger = AuditLogger(output_stream=StringIO(), min_level=LogLevel.DEBUG)
            flusher = MagicMock(side_effect=DnsFlushError(
                code="flush_failed",
                message="All DNS flush commands failed",
            ))

            CommitEngine(logger=logger, dns_flusher=flusher).commit_bytes(b"new\n", destination)

            assert destination.read_bytes() == b"new\n"
            warnings = [e for e in logger.entries if e.level == LogLevel.WARN]
            assert len(warnings) == 1
            assert warnings[0].component == "commit"
            assert warnings[0].data["error_code"] == "flush_failed"

    def test_no_flush_when_commit_fails(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "hosts"
            flusher = MagicMock()
            logger = AuditLogger(output_stream=StringIO())

            with patch("hosts_keeper.commit.os.replace", side_effect=OSError(errno.EIO, "I/O")):
                try:
                    CommitEngine(logger=logger, dns_flusher=flusher).commit_bytes(
                        b"x\n", destination
                    )
                    assert False, "Expected AtomicRenameError"
                except AtomicRenameError:
                    pass

            flusher.assert_not_called()
            assert any(e.level == LogLevel.ERROR for e in logger.entries)
