"""
Tests for the platform helpers.

Subprocess calls and the platform name are patched, so no DNS command is
ever run.
"""

import os
import subprocess
import tempfile
from pathlib import Path
from unittest.mock import patch

from hosts_keeper.exceptions import DnsFlushError
from hosts_keeper.system import (
    UNIX_HOSTS_PATH,
    WINDOWS_HOSTS_PATH,
    default_config_path,
    default_history_dir,
    default_hosts_file_path,
    flush_dns_cache,
    is_elevated,
)


class TestDefaultsProperty:
    """Tests for default locations."""

    def test_hosts_path_per_platform(self) -> None:
        with patch("hosts_keeper.system.current_system", return_value="windows"):
            assert default_hosts_file_path() == WINDOWS_HOSTS_PATH
        with patch("hosts_keeper.system.current_system", return_value="linux"):
            assert default_hosts_file_path() == UNIX_HOSTS_PATH

    def test_environment_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            env = {"HOSTS_KEEPER_HOME": tmpdir, "HOSTS_KEEPER_CONFIG": ""}
            with patch.dict(os.environ, env):
                assert default_config_path() == Path(tmpdir) / "config.ini"
                assert default_history_dir() == Path(tmpdir) / "history"

            config = str(Path(tmpdir) / "custom.ini")
            with patch.dict(os.environ, {"HOSTS_KEEPER_CONFIG": config}):
                assert default_config_path() == Path(config)


class TestPrivilegeProbeProperty:
    """Tests for is_elevated."""

    def test_existing_file_uses_file_access(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            hosts = Path(tmpdir) / "hosts"
            hosts.write_text("")
            with patch("hosts_keeper.system.os.access", return_value=False) as access:
                assert is_elevated(hosts) is False
            access.assert_called_once_with(hosts, os.W_OK)

    def test_missing_file_uses_parent_access(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            hosts = Path(tmpdir) / "hosts"
            with patch("hosts_keeper.system.os.access", return_value=True) as access:
                assert is_elevated(hosts) is True
            access.assert_called_once_with(Path(tmpdir), os.W_OK)


class TestDnsFlushProperty:
    """Tests for flush_dns_cache."""

    def test_linux_stops_at_first_success(self) -> None:
        with patch("hosts_keeper.system.current_system", return_value="linux"), \
                patch("hosts_keeper.system.subprocess.run") as run:
            run.side_effect = [FileNotFoundError("resolvectl"), subprocess.CompletedProcess([], 0)]

            used = flush_dns_cache()

        assert used == "systemd-resolve --flush-caches"
        assert run.call_count == 2

    def test_macos_runs_both_commands(self) -> None:
        with patch("hosts_keeper.system.current_system", return_value="darwin"), \
                patch("hosts_keeper.system.subprocess.run") as run:
            used = flush_dns_cache()

        assert used == "dscacheutil -flushcache; killall -HUP mDNSResponder"
        assert run.call_count == 2

    def test_all_commands_failing(self) -> None:
        with patch("hosts_keeper.system.current_system", return_value="linux"), \
                patch(
                    "hosts_keeper.system.subprocess.run",
                    side_effect=subprocess.CalledProcessError(1, "cmd"),
                ):
            try:
                flush_dns_cache()
                assert False, "Expected DnsFlushError"
            except DnsFlushError as e:
                assert e.code == "flush_failed"
                assert len(e.details["attempts"]) == 3

    def test_unknown_platform(self) -> None:
        with patch("hosts_keeper.system.current_system", return_value="plan9"):
            try:
                flush_dns_cache()
                assert False, "Expected DnsFlushError"
            except DnsFlushError as e:
                assert e.code == "unsupported_platform"
