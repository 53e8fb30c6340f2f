"""
Tests for rpi_first_boot.config.settings module.

This test suite covers:
- Defaults when no file or an empty/commented file is given
- Line parsing: comments, separators, malformed lines
- Value cleanup: inline comments, trailing blanks, quotes
- Type coercion and fallback for numeric keys
- Unknown keys kept as extras
- Loading from disk
"""

import pytest

from rpi_first_boot.config import settings
from rpi_first_boot.config.settings import (
    DEFAULT_SETTINGS,
    clean_value,
    load_configuration,
    parse_config_text,
    parse_line,
    resolve_configuration,
    strip_quotes,
)
from rpi_first_boot.domain.models import ResolvedConfiguration


class TestDefaults:
    """Unset keys always yield the documented defaults."""

    @pytest.mark.parametrize(
        "contents",
        [None, "", "\n\n", "# only a comment\n   # indented comment\n"],
    )
    def test_no_values_gives_defaults(self, contents):
        config = resolve_configuration(contents)

        assert config.new_partition_size_mb == 100
        assert config.new_partition_label == "logs"
        assert config.new_locale == "en_GB.UTF-8"
        assert config.new_timezone == "Europe/London"
        assert config.new_hostname_tag == ""
        assert config.new_ssh_setting == 0
        assert config.new_wifi_country == "GB"
        assert config.new_wifi_ssid == "Our network"
        assert config.new_wifi_password == "Secret"
        assert config.new_boot_behaviour == "B4"
        assert config.sd_card_number == "XX"
        assert dict(config.extras) == {}

    def test_defaults_match_dataclass_defaults(self):
        """The settings table and the dataclass agree on every default."""
        assert resolve_configuration(None) == ResolvedConfiguration()

    def test_partial_file_keeps_other_defaults(self):
        config = resolve_configuration("new_timezone=Europe/Amsterdam\n")

        assert config.new_timezone == "Europe/Amsterdam"
        assert config.new_locale == DEFAULT_SETTINGS["new_locale"]
        assert config.new_partition_size_mb == DEFAULT_SETTINGS["new_partition_size_MB"]

    def test_custom_defaults_mapping(self):
        defaults = dict(DEFAULT_SETTINGS, new_partition_label="data")

        config = resolve_configuration(None, defaults)

        assert config.new_partition_label == "data"


class TestParseLine:
    """Tests for parse_line()."""

    @pytest.mark.parametrize("line", ["", "   ", "# comment", "   # comment = 1"])
    def test_blank_and_comment_lines_skipped(self, line):
        assert parse_line(line) is None

    @pytest.mark.parametrize(
        "line",
        [
            "new_timezone=Europe/Paris",
            "new_timezone = Europe/Paris",
            "new_timezone\t=\tEurope/Paris",
            "new_timezone Europe/Paris",
            "  new_timezone=Europe/Paris  ",
        ],
    )
    def test_separators(self, line):
        assert parse_line(line) == ("new_timezone", "Europe/Paris")

    def test_split_on_first_equals_only(self):
        assert parse_line("new_wifi_password=a=b=c") == ("new_wifi_password", "a=b=c")

    def test_line_without_separator_is_malformed(self):
        assert parse_line("new_timezone") is None

    def test_empty_value(self):
        assert parse_line("new_hostname_tag=") == ("new_hostname_tag", "")


class TestCleanValue:
    """Tests for clean_value() and strip_quotes()."""

    def test_inline_comment_removed(self):
        assert clean_value("200   # size in MB") == "200"

    def test_trailing_whitespace_removed(self):
        assert clean_value("logs \t ") == "logs"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ('"Our network"', "Our network"),
            ("'Our network'", "Our network"),
            ('"quoted" # comment', "quoted"),
        ],
    )
    def test_matching_quotes_removed(self, raw, expected):
        assert clean_value(raw) == expected

    @pytest.mark.parametrize("raw", ["\"mixed'", "'mixed\"", '"open', "close'", '"'])
    def test_mismatched_quotes_untouched(self, raw):
        assert strip_quotes(raw) == raw

    def test_only_one_layer_removed(self):
        assert strip_quotes("\"'inner'\"") == "'inner'"
        assert strip_quotes('""') == ""


class TestResolveConfiguration:
    """Tests for resolve_configuration()."""

    def test_full_file(self):
        contents = """
# Parameters for the one-time script
new_partition_size_MB=256
new_partition_label='DATA'
new_locale=nl_NL.UTF-8
new_timezone="Europe/Amsterdam"   # local time
new_hostname_tag=lab
new_ssh_setting=1
new_wifi_country=NL
new_wifi_ssid="Lab WiFi"
new_wifi_password='s3cret'
sd_card_number=07
"""
        config = resolve_configuration(contents)

        assert config.new_partition_size_mb == 256
        assert config.new_partition_label == "DATA"
        assert config.new_locale == "nl_NL.UTF-8"
        assert config.new_timezone == "Europe/Amsterdam"
        assert config.new_hostname_tag == "lab"
        assert config.new_ssh_setting == 1
        assert config.ssh_enabled is False
        assert config.new_wifi_country == "NL"
        assert config.new_wifi_ssid == "Lab WiFi"
        assert config.new_wifi_password == "s3cret"
        assert config.sd_card_number == "07"

    def test_later_assignment_wins(self):
        config = resolve_configuration("new_partition_size_MB=50\nnew_partition_size_MB=75\n")

        assert config.new_partition_size_mb == 75

    def test_non_numeric_size_falls_back_to_default(self):
        config = resolve_configuration("new_partition_size_MB=lots\n")

        assert config.new_partition_size_mb == 100

    @pytest.mark.parametrize(
        "line",
        ["new_partition_label=\n", "new_partition_label=''\n", 'new_partition_label="  "\n'],
    )
    def test_blank_label_falls_back_to_default(self, line):
        config = resolve_configuration(line)

        assert config.new_partition_label == "logs"

    def test_blank_hostname_tag_allowed(self):
        assert resolve_configuration("new_hostname_tag=\n").new_hostname_tag == ""

    def test_zero_size(self):
        config = resolve_configuration("new_partition_size_MB=0\n")

        assert config.new_partition_size_mb == 0

    def test_unknown_keys_stored_as_extras(self):
        config = resolve_configuration("favourite_colour=blue\nnew_locale=C.UTF-8\n")

        assert config.extras["favourite_colour"] == "blue"
        assert "new_locale" not in config.extras

    def test_extras_are_read_only(self):
        config = resolve_configuration("favourite_colour=blue\n")

        with pytest.raises(TypeError):
            config.extras["favourite_colour"] = "red"

    def test_configuration_is_immutable(self):
        config = resolve_configuration(None)

        with pytest.raises(AttributeError):
            config.new_partition_size_mb = 5

    def test_garbage_never_raises(self):
        contents = "=\n==\n= value\n\x00\x01\nkey\n'quoted key'=1\n#\n"

        config = resolve_configuration(contents)

        assert isinstance(config, ResolvedConfiguration)
        assert config.new_partition_size_mb == 100

    def test_password_not_in_repr(self):
        config = resolve_configuration("new_wifi_password=hunter2\n")

        assert "hunter2" not in repr(config)


class TestParseConfigText:
    def test_malformed_lines_skipped(self):
        values = parse_config_text("valid=1\njustakey\n# comment\nother = 2\n")

        assert values == {"valid": "1", "other": "2"}


class TestLoadConfiguration:
    """Tests for load_configuration()."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_configuration(tmp_path / "missing.conf")

        assert config == ResolvedConfiguration()

    def test_reads_file(self, write_file):
        path = write_file("one-time-script.conf", "new_partition_label=music\n")

        config = load_configuration(path)

        assert config.new_partition_label == "music"

    def test_unreadable_file_gives_defaults(self, tmp_path):
        # A directory exists but cannot be read as text
        path = tmp_path / "conf.d"
        path.mkdir()

        config = load_configuration(path)

        assert config == ResolvedConfiguration()

    def test_default_path_used(self, tmp_path, monkeypatch):
        path = tmp_path / "one-time-script.conf"
        path.write_text("sd_card_number=42\n")
        monkeypatch.setattr(settings, "CONFIG_PATH", path)

        config = load_configuration()

        assert config.sd_card_number == "42"
