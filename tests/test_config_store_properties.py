"""
Property-based tests for the Config Store.

Verifies that config.ini keeps its exact formatting across load/save,
that updates touch only the affected values, and that invalid values are
rejected without changing the file.
"""

import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from hosts_keeper.config import Configuration
from hosts_keeper.config_store import ConfigStore, parse_ini, serialize_ini
from hosts_keeper.enums import LogFormat, LogLevel, Theme
from hosts_keeper.exceptions import ParseError, ValidationError


SAMPLE_CONFIG = (
    "; hosts keeper settings\n"
    "[hosts]\n"
    "host_file_path = /tmp/hosts-test   # custom\n"
    "\n"
    "[history]\n"
    "max_history_entries=20\n"
    "extra_option = kept\n"
    "\n"
    "[appearance]\n"
    "theme = light\n"
    "\n"
    "[plugins]\n"
    "foo = bar\n"
)


@st.composite
def comment_strategy(draw) -> str:
    prefix = draw(st.sampled_from(["#", ";", "  #"]))
    text = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz =[]", max_size=20))
    return prefix + text


@st.composite
def unknown_key_line_strategy(draw) -> str:
    key = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=10))
    value = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 ./", max_size=15))
    spacing = draw(st.sampled_from(["=", " = ", "  =\t"]))
    return f"x_{key}{spacing}{value}"


@st.composite
def config_text_strategy(draw) -> str:
    """Generate config files with known and unknown keys, comments and blank lines."""
    lines = []
    lines.extend(draw(st.lists(comment_strategy(), max_size=2)))
    lines.append("[history]")
    lines.append(f"max_history_entries = {draw(st.integers(min_value=1, max_value=1000))}")
    lines.extend(draw(st.lists(unknown_key_line_strategy(), max_size=3)))
    lines.append("")
    lines.append("[appearance]")
    lines.append(f"theme={draw(st.sampled_from(['dark', 'light', 'DARK']))}")
    lines.extend(draw(st.lists(comment_strategy(), max_size=2)))
    lines.append("[logging]")
    lines.append(f"level = {draw(st.sampled_from(['debug', 'info', 'warn', 'error']))}")
    eol = draw(st.sampled_from(["\n", "\r\n"]))
    text = eol.join(lines)
    if draw(st.booleans()):
        text += eol
    return text


class TestFormatFidelityProperty:
    """Property-based tests for unmodified load/save."""

    @given(text=config_text_strategy())
    @settings(max_examples=100)
    def test_parse_serialize_round_trip(self, text: str) -> None:
        assert serialize_ini(parse_ini(text)) == text

    @given(text=config_text_strategy())
    @settings(max_examples=50, deadline=None)
    def test_load_then_save_reproduces_file(self, text: str) -> None:
        """
        *For any* valid config.ini, loading and saving without changes SHALL
        reproduce the file byte-for-byte.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_bytes(text.encode())

            store = ConfigStore(path)
            store.load()
            store.save()

            assert path.read_bytes() == text.encode()

    def test_tilde_path_is_not_rewritten(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            text = "[history]\nhistory_dir = ~/snapshots\n"
            path.write_text(text)

            store = ConfigStore(path)
            config = store.load()
            store.save()

            assert config.history_dir == Path("~/snapshots").expanduser()
            assert path.read_text() == text


class TestUpdateProperty:
    """Property-based tests for update."""

    @given(value=st.integers(min_value=-100, max_value=5000))
    @settings(max_examples=50, deadline=None)
    def test_update_rewrites_only_the_value(self, value: int) -> None:
        """
        *For any* new retention cap, an update SHALL change only the value
        part of that line, and the stored value SHALL be clamped to [1, 1000].
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text(SAMPLE_CONFIG)

            store = ConfigStore(path)
            store.load()
            config = store.update(max_history_entries=value)

            expected_value = max(1, min(1000, value))
            assert config.max_history_entries == expected_value

            before = SAMPLE_CONFIG.splitlines()
            after = path.read_text().splitlines()
            assert len(after) == len(before)
            for old, new in zip(before, after):
                if old.startswith("max_history_entries"):
                    if expected_value == 20:
                        assert new == old
                    else:
                        assert new == f"max_history_entries={expected_value}"
                else:
                    assert new == old

    def test_update_keeps_inline_comment(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text(SAMPLE_CONFIG)
            store = ConfigStore(path)
            store.load()

            store.update(host_file_path="/tmp/other-hosts")

            assert "host_file_path = /tmp/other-hosts   # custom\n" in path.read_text()

    def test_missing_key_is_added_to_its_section(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text(SAMPLE_CONFIG)
            store = ConfigStore(path)
            store.load()

            store.update(history_dir="/tmp/snapshots", log_level="debug")

            lines = path.read_text().splitlines()
            assert lines.index("history_dir = /tmp/snapshots") == lines.index("extra_option = kept") + 1
            assert lines[-2:] == ["[logging]", "level = debug"]
            reloaded = ConfigStore(path).load()
            assert reloaded.history_dir == Path("/tmp/snapshots")
            assert reloaded.log_level == LogLevel.DEBUG
            assert reloaded.theme == Theme.LIGHT

    def test_update_creates_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.ini"
            store = ConfigStore(path)
            store.load()

            store.update(theme="light", log_format="json")

            assert path.read_text() == (
                "[appearance]\ntheme = light\n\n[logging]\nformat = json\n"
            )

    def test_invalid_values_change_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text(SAMPLE_CONFIG)
            store = ConfigStore(path)
            store.load()

            for partial in (
                {"max_history_entries": "many"},
                {"theme": "solarized"},
                {"log_level": "loud"},
                {"unknown_field": "x"},
                {"theme": "dark", "log_format": "xml"},
            ):
                try:
                    store.update(**partial)
                    assert False, f"Expected ValidationError for {partial}"
                except ValidationError:
                    pass

            assert path.read_text() == SAMPLE_CONFIG
            assert store.configuration.theme == Theme.LIGHT


class TestLoadProperty:
    """Tests for loading."""

    def test_missing_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"

            config = ConfigStore(path).load()

            assert config == Configuration()
            assert not path.exists()

    def test_values_are_parsed(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text(SAMPLE_CONFIG)

            config = ConfigStore(path).load()

            assert config.host_file_path == Path("/tmp/hosts-test")
            assert config.max_history_entries == 20
            assert config.theme == Theme.LIGHT
            assert config.log_format == LogFormat.TEXT

    def test_out_of_range_value_is_clamped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text("[history]\nmax_history_entries = 0\n")
            assert ConfigStore(path).load().max_history_entries == 1

    def test_malformed_line(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.ini"
            path.write_text("[history]\nthis line has no separator\n")
            try:
                ConfigStore(path).load()
                assert False, "Expected ParseError"
            except ParseError as e:
                assert e.line_number == 2

    def test_configuration_is_a_copy(self) -> None:
        store = ConfigStore(Path("unused.ini"))
        copy = store.configuration
        copy.max_history_entries = 7
        assert store.configuration.max_history_entries == 50
