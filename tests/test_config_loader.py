"""Tests for configuration loading and validation.

Covers JSON and shell-style files, URL normalization, table list parsing,
option validation and the error messages raised for bad input.
"""

import json
from pathlib import Path

import pytest

from core.config_loader import ConfigLoader, normalize_url, parse_table_list
from core.exceptions import ConfigurationError


def _base(**overrides) -> dict:
    data = {
        "stage_path": "/var/www/stage",
        "stage_url": "https://stage.example.com/",
        "prod_path": "/var/www/prod",
        "prod_url": "example.com",
        "backup_dir": "/var/backups/wp",
    }
    data.update(overrides)
    return data


# ------------------------------------------------------------------
# normalize_url / parse_table_list
# ------------------------------------------------------------------


class TestNormalizeUrl:
    """Tests for reducing URLs to bare hosts."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://stage.example.com/", "stage.example.com"),
            ("http://stage.example.com", "stage.example.com"),
            ("stage.example.com", "stage.example.com"),
            ("  https://example.com/blog/ ", "example.com/blog"),
        ],
    )
    def test_strips_scheme_and_trailing_slash(self, raw: str, expected: str) -> None:
        """Scheme and trailing slashes are removed; paths survive."""
        assert normalize_url(raw) == expected


class TestParseTableList:
    """Tests for preserved table list parsing."""

    def test_space_delimited_string(self) -> None:
        """Shell-style values are split on whitespace."""
        assert parse_table_list("wp_leads  wp_orders") == frozenset({"wp_leads", "wp_orders"})

    def test_comma_delimited_string(self) -> None:
        """Commas work as separators too."""
        assert parse_table_list("wp_leads,wp_orders") == frozenset({"wp_leads", "wp_orders"})

    def test_list_with_blanks(self) -> None:
        """Blank entries are dropped."""
        assert parse_table_list(["wp_leads", " ", ""]) == frozenset({"wp_leads"})

    def test_none_is_empty(self) -> None:
        """Missing value means nothing is preserved."""
        assert parse_table_list(None) == frozenset()

    def test_rejects_other_types(self) -> None:
        """Numbers are not a table list."""
        with pytest.raises(ConfigurationError):
            parse_table_list(42)


# ------------------------------------------------------------------
# ConfigLoader.build
# ------------------------------------------------------------------


class TestBuild:
    """Tests for validating raw configuration dictionaries."""

    def test_minimal_config_uses_defaults(self) -> None:
        """Only the five required fields are needed."""
        config = ConfigLoader.build(_base())

        assert config.stage_url == "stage.example.com"
        assert config.prod_url == "example.com"
        assert config.max_backups == 5
        assert config.preserved_tables == frozenset()
        assert config.verbose is True
        assert config.wp_cli == "wp"
        assert config.log_path == "/var/backups/wp/deployment.log"

    @pytest.mark.parametrize("field", ["stage_path", "stage_url", "prod_path", "prod_url", "backup_dir"])
    def test_missing_required_field(self, field: str) -> None:
        """Each required field is reported by name."""
        raw = _base()
        del raw[field]
        with pytest.raises(ConfigurationError, match=field):
            ConfigLoader.build(raw)

    def test_blank_required_field(self) -> None:
        """Whitespace-only values count as missing."""
        with pytest.raises(ConfigurationError, match="backup_dir"):
            ConfigLoader.build(_base(backup_dir="   "))

    def test_same_urls_rejected(self) -> None:
        """Stage and production must be different hosts after normalization."""
        with pytest.raises(ConfigurationError, match="different"):
            ConfigLoader.build(_base(stage_url="https://example.com/", prod_url="example.com"))

    def test_prod_url_containing_stage_url_rejected(self) -> None:
        """A production host that embeds the staging host cannot be rewritten cleanly."""
        with pytest.raises(ConfigurationError, match="must not contain stage_url"):
            ConfigLoader.build(_base(stage_url="example.com", prod_url="https://www.example.com"))

    def test_stage_subdomain_of_prod_accepted(self) -> None:
        """The usual stage.<prod> layout is valid."""
        config = ConfigLoader.build(_base())
        assert (config.stage_url, config.prod_url) == ("stage.example.com", "example.com")

    def test_same_paths_rejected(self) -> None:
        """Stage and production must be different directories."""
        with pytest.raises(ConfigurationError, match="different directories"):
            ConfigLoader.build(_base(prod_path="/var/www/stage/"))

    def test_max_backups_must_be_positive(self) -> None:
        """Zero would delete the backup just taken."""
        with pytest.raises(ConfigurationError, match="max_backups"):
            ConfigLoader.build(_base(max_backups=0))

    def test_max_backups_string(self) -> None:
        """Numeric strings from shell files are accepted."""
        assert ConfigLoader.build(_base(max_backups="3")).max_backups == 3

    def test_options_are_applied(self) -> None:
        """Known options override the defaults."""
        config = ConfigLoader.build(_base(options={
            "verbose": "false",
            "wp_cli": "/usr/local/bin/wp",
            "allow_root": False,
            "permission_workers": 8,
            "retry_attempts": 5,
            "retry_delay": 0.5,
        }))

        assert config.verbose is False
        assert config.wp_cli == "/usr/local/bin/wp"
        assert config.allow_root is False
        assert config.permission_workers == 8
        assert config.retry_attempts == 5
        assert config.retry_delay == 0.5

    def test_bad_boolean_option(self) -> None:
        """Unrecognized boolean strings are rejected."""
        with pytest.raises(ConfigurationError, match="options.verbose"):
            ConfigLoader.build(_base(options={"verbose": "maybe"}))

    def test_negative_retry_delay(self) -> None:
        """Delays cannot be negative."""
        with pytest.raises(ConfigurationError, match="retry_delay"):
            ConfigLoader.build(_base(options={"retry_delay": -1}))

    def test_options_must_be_dict(self) -> None:
        """A list in place of options is an error."""
        with pytest.raises(ConfigurationError, match="options"):
            ConfigLoader.build(_base(options=["verbose"]))

    def test_optional_production_settings(self) -> None:
        """Timezone and admin email are carried through; blanks become None."""
        config = ConfigLoader.build(_base(prod_timezone="Europe/Berlin", prod_admin_email=""))

        assert config.prod_timezone == "Europe/Berlin"
        assert config.prod_admin_email is None


# ------------------------------------------------------------------
# ConfigLoader.load
# ------------------------------------------------------------------


class TestLoad:
    """Tests for reading configuration files from disk."""

    def test_json_file(self, tmp_path: Path) -> None:
        """JSON files are parsed by suffix."""
        path = tmp_path / "deploy_config.json"
        path.write_text(json.dumps(_base(preserved_tables=["wp_leads"])))

        config = ConfigLoader.load_deployment_config(str(path))

        assert config.preserved_tables == frozenset({"wp_leads"})

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Broken JSON is a configuration error."""
        path = tmp_path / "deploy_config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            ConfigLoader.load(str(path))

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(str(tmp_path / "nope.json"))

    def test_shell_file(self, tmp_path: Path) -> None:
        """KEY="value" files map onto the same fields."""
        path = tmp_path / "deploy_config.sh"
        path.write_text(
            "#!/bin/bash\n"
            "# Deployment settings\n"
            'STAGE_PATH="/var/www/stage"\n'
            "STAGE_URL='https://stage.example.com'\n"
            'PROD_PATH="/var/www/prod"\n'
            'export PROD_URL="example.com"\n'
            'BACKUP_DIR="/var/backups/wp"\n'
            "MAX_BACKUPS=3  # keep three\n"
            'PRESERVE_TABLES="wp_leads wp_orders"\n'
            'VERBOSE="false"\n'
            'UNRELATED="ignored"\n'
            "echo not an assignment\n"
        )

        config = ConfigLoader.load_deployment_config(str(path))

        assert config.stage_path == "/var/www/stage"
        assert config.stage_url == "stage.example.com"
        assert config.prod_url == "example.com"
        assert config.max_backups == 3
        assert config.preserved_tables == frozenset({"wp_leads", "wp_orders"})
        assert config.verbose is False

    def test_shell_file_unbalanced_quote(self, tmp_path: Path) -> None:
        """Unparseable values report the line number."""
        path = tmp_path / "deploy_config.sh"
        path.write_text('STAGE_PATH="/var/www/stage\n')

        with pytest.raises(ConfigurationError, match="deploy_config.sh:1"):
            ConfigLoader.load(str(path))
