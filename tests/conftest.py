"""Shared fixtures: in-memory stand-ins for wp-cli, MySQL and rsync.

Tables are dicts of ``name -> list of row dicts`` shared between the fake
wp-cli and the fake SQL handler of the same site, so a dump exported by one
and a row updated by the other see the same data. Dumps are JSON files.
"""

import copy
import json
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from core.exceptions import DatabaseError, FileOperationError
from handlers.wp_cli_handler import SearchReplaceSummary

STAGE_HOST = "stage.example.com"
PROD_HOST = "example.com"

Tables = Dict[str, List[Dict[str, str]]]


# ------------------------------------------------------------------
# Sample data
# ------------------------------------------------------------------


def serialized_logo(host: str) -> str:
    """A PHP-serialized option value with a correct string length."""
    url = f"https://{host}/logo.png"
    return f'a:1:{{s:4:"logo";s:{len(url.encode())}:"{url}";}}'


def site_tables(host: str, leads: Optional[List[str]] = None) -> Tables:
    """A small but complete WordPress database for one host."""
    tables: Tables = {
        "wp_options": [
            {"option_name": "siteurl", "option_value": f"https://{host}"},
            {"option_name": "home", "option_value": f"http://{host}"},
            {"option_name": "blog_public", "option_value": "0"},
            {"option_name": "comment_moderation", "option_value": "0"},
            {"option_name": "WP_DEBUG", "option_value": "1"},
            {"option_name": "_transient_feed", "option_value": "cached"},
            {"option_name": "_site_transient_update", "option_value": "cached"},
            {"option_name": "rewrite_rules", "option_value": "a:0:{}"},
        ],
        "wp_posts": [
            {
                "ID": "1",
                "post_content": f'<a href="http://{host}/about">About</a> <img src="https://{host}/a.png">',
                "post_excerpt": f"Read more at {host}",
                "post_status": "publish",
                "guid": f"https://{host}/?p=1",
            },
            {
                "ID": "2",
                "post_content": "No links here",
                "post_excerpt": "",
                "post_status": "draft",
                "guid": f"https://{host}/?p=2",
            },
        ],
        "wp_postmeta": [{"meta_key": "_link", "meta_value": f"//{host}/cdn/x.js"}],
        "wp_termmeta": [{"meta_key": "icon", "meta_value": f"https://{host}/icon.svg"}],
        "wp_comments": [
            {"comment_content": f"see http://{host}/x", "comment_author_url": f"http://{host}"},
        ],
        "wp_commentmeta": [{"meta_key": "ref", "meta_value": host}],
        "wp_usermeta": [{"meta_key": "site", "meta_value": f"https://{host}/profile"}],
        "wp_users": [{"user_login": "admin"}],
    }
    if leads is not None:
        tables["wp_leads"] = [{"id": str(i), "email": email} for i, email in enumerate(leads, 1)]
    return tables


# ------------------------------------------------------------------
# Fakes
# ------------------------------------------------------------------


class FakeWPCLI:
    """Behaves like WPCLIHandler over an in-memory table dict."""

    def __init__(self, name: str, tables: Tables, events: list):
        self.name = name
        self.tables = tables
        self.events = events
        self.available = True
        self.database_ok = True
        self.search_replace_supported = False
        self.fail_export_for: set = set()
        self.fail_import = False
        self.fail_import_paths: set = set()
        self.fail_reset = False
        self.flush_results: Dict[str, List[bool]] = {}

    # Reads

    def is_available(self) -> bool:
        return self.available

    def check_database(self) -> bool:
        return self.database_ok

    def is_installed(self) -> bool:
        return bool(self.tables)

    def supports_command(self, *command: str) -> bool:
        return self.search_replace_supported

    def query(self, sql: str) -> str:
        if sql.strip().upper().startswith("SHOW TABLES"):
            return "\n".join(self.tables) + "\n"
        raise DatabaseError(f"unsupported fake query: {sql}")

    def option_get(self, name: str) -> Optional[str]:
        for row in self.tables.get("wp_options", []):
            if row["option_name"] == name:
                return row["option_value"]
        return None

    # Dumps

    def export_database(self, destination: str, tables: Optional[List[str]] = None) -> None:
        self.events.append(("export", self.name, os.path.basename(destination)))
        key = tuple(tables) if tables else None
        if key in self.fail_export_for or (None in self.fail_export_for and key is None):
            raise DatabaseError(f"export to {destination} failed")
        selected = {t: self.tables[t] for t in (tables or self.tables)}
        Path(destination).write_text(json.dumps(selected))

    def import_database(self, source: str) -> None:
        self.events.append(("import", self.name, os.path.basename(source)))
        if self.fail_import or source in self.fail_import_paths:
            raise DatabaseError(f"import of {source} failed")
        try:
            dump = json.loads(Path(source).read_text())
        except ValueError:
            raise DatabaseError(f"{source} is not a dump this fake understands")
        for table, rows in dump.items():
            self.tables[table] = copy.deepcopy(rows)

    def reset_database(self) -> None:
        self.events.append(("reset", self.name))
        if self.fail_reset:
            raise DatabaseError("reset failed")
        self.tables.clear()

    # Search-replace (literal, like the SQL fallback)

    def search_replace(self, old: str, new: str, dry_run: bool = False,
                       skip_columns=("guid",)) -> SearchReplaceSummary:
        self.events.append(("search-replace", self.name, old, new, dry_run))
        summary = SearchReplaceSummary(old=old, new=new, dry_run=dry_run)
        for table, rows in self.tables.items():
            for row in rows:
                for column, value in row.items():
                    if column in skip_columns or not isinstance(value, str) or old not in value:
                        continue
                    summary.total += value.count(old)
                    if not dry_run:
                        row[column] = value.replace(old, new)
        return summary

    # Flushes

    def _flush(self, name: str) -> bool:
        self.events.append(("flush", self.name, name))
        results = self.flush_results.get(name)
        if results:
            return results.pop(0)
        return True

    def cache_flush(self) -> bool:
        return self._flush("cache")

    def rewrite_flush(self) -> bool:
        return self._flush("rewrite")

    def transient_delete_all(self) -> bool:
        return self._flush("transient")

    def core_update_db(self) -> bool:
        return self._flush("update-db")

    def maintenance_mode_deactivate(self) -> bool:
        return True

    def option_update(self, name: str, value: str) -> bool:
        options = self.tables.setdefault("wp_options", [])
        for row in options:
            if row["option_name"] == name:
                row["option_value"] = value
                return True
        options.append({"option_name": name, "option_value": value})
        return True


class FakeDatabase:
    """Behaves like DatabaseHandler over the same table dict as a FakeWPCLI."""

    def __init__(self, tables: Tables, events: list, table_prefix: str = "wp_"):
        self.tables = tables
        self.events = events
        self.table_prefix = table_prefix
        self.connected = False
        self.reachable = True
        self.fail_drop: set = set()
        self.fail_replace: set = set()
        self.executed: List[str] = []

    @property
    def options_table(self) -> str:
        return f"{self.table_prefix}options"

    def connect(self) -> bool:
        self.connected = self.reachable
        return self.reachable

    def disconnect(self) -> None:
        self.connected = False

    def ping(self) -> bool:
        return self.reachable

    def _rows(self, table: str) -> List[Dict[str, str]]:
        if table not in self.tables:
            raise DatabaseError(f"Table '{table}' doesn't exist")
        return self.tables[table]

    def list_tables(self) -> List[str]:
        return list(self.tables)

    def drop_table(self, table: str) -> bool:
        self.events.append(("drop", table))
        if table in self.fail_drop:
            return False
        self.tables.pop(table, None)
        return True

    def set_foreign_key_checks(self, enabled: bool) -> None:
        self.events.append(("fk", enabled))

    def replace_in_column(self, table, column, old, new, like_filter=True) -> int:
        self.events.append(("sql-replace", table, column, old, new))
        if table in self.fail_replace:
            raise DatabaseError(f"replace on {table} failed")
        changed = 0
        for row in self._rows(table):
            value = row.get(column)
            if isinstance(value, str) and old in value:
                row[column] = value.replace(old, new)
                changed += 1
        return changed

    def count_matches(self, table, column, needle) -> int:
        return sum(
            1 for row in self._rows(table)
            if isinstance(row.get(column), str) and needle in row[column]
        )

    def fetch_values_containing(self, table, column, needle) -> List[str]:
        return [
            row[column] for row in self._rows(table)
            if isinstance(row.get(column), str) and needle in row[column]
        ]

    def fetch_scalar(self, sql, params=None):
        if "post_status = 'publish'" in sql:
            return sum(1 for row in self._rows("wp_posts") if row.get("post_status") == "publish")
        raise DatabaseError(f"unsupported fake query: {sql}")

    def get_option(self, name: str) -> Optional[str]:
        for row in self._rows(self.options_table):
            if row["option_name"] == name:
                return row["option_value"]
        return None

    def update_option(self, name: str, value: str, insert_missing: bool = False) -> bool:
        options = self._rows(self.options_table)
        for row in options:
            if row["option_name"] == name:
                row["option_value"] = value
                return True
        if insert_missing:
            options.append({"option_name": name, "option_value": value})
        return True

    def delete_options(self, name: str) -> int:
        options = self._rows(self.options_table)
        before = len(options)
        options[:] = [row for row in options if row["option_name"] != name]
        return before - len(options)

    def delete_options_like(self, prefixes) -> int:
        options = self._rows(self.options_table)
        before = len(options)
        options[:] = [
            row for row in options
            if not any(row["option_name"].startswith(prefix) for prefix in prefixes)
        ]
        return before - len(options)

    def execute_statements(self, statements):
        statements = list(statements)
        self.executed.extend(statements)
        return len(statements), 0


class FakeRsync:
    """Mirror with delete semantics; only root-anchored excludes are honoured."""

    def __init__(self, events: list):
        self.events = events
        self.available = True
        self.fail = False
        self.calls: List[dict] = []

    def is_available(self) -> bool:
        return self.available

    def mirror(self, source, destination, excludes=(), delete=True, checksum=True) -> None:
        self.events.append(("mirror", source, destination))
        self.calls.append({"source": source, "destination": destination, "excludes": list(excludes)})
        if self.fail:
            raise FileOperationError("rsync failed: exit 23")

        protected = {pattern.strip("/") for pattern in excludes if pattern.startswith("/")}
        src, dst = Path(source), Path(destination)

        if delete:
            for path in sorted(dst.rglob("*"), key=lambda p: len(p.parts), reverse=True):
                relative = path.relative_to(dst)
                if str(relative) in protected or any(str(relative).startswith(p + "/") for p in protected):
                    continue
                if not (src / relative).exists():
                    if path.is_dir() and not path.is_symlink():
                        shutil.rmtree(path)
                    else:
                        path.unlink()

        for path in src.rglob("*"):
            relative = path.relative_to(src)
            if str(relative) in protected:
                continue
            target = dst / relative
            if path.is_dir():
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, target)


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


class Sites:
    """Stage and production trees plus their fake collaborators."""

    def __init__(self, root: Path):
        self.root = root
        self.events: list = []
        self.stage_path = root / "stage"
        self.prod_path = root / "prod"
        self.backup_dir = root / "backups"

        for path, host in ((self.stage_path, STAGE_HOST), (self.prod_path, PROD_HOST)):
            (path / "wp-content" / "uploads" / "2024").mkdir(parents=True)
            (path / "wp-content" / "themes").mkdir(parents=True)
            (path / "wp-config.php").write_text(
                f"<?php\ndefine('DB_NAME', '{path.name}_db');\ndefine('DB_USER', 'wp');\n"
                f"define('DB_PASSWORD', 'secret');\ndefine('DB_HOST', 'localhost');\n"
                f"$table_prefix = 'wp_';\n"
            )
            (path / "index.php").write_text(f"<?php // {host}\n")
            (path / "wp-content" / "uploads" / "2024" / "photo.jpg").write_bytes(b"\xff\xd8jpeg")

        (self.stage_path / "wp-content" / "themes" / "new-theme.php").write_text("<?php // new\n")
        (self.prod_path / "wp-content" / "themes" / "old-theme.php").write_text("<?php // old\n")

        self.stage_tables = site_tables(STAGE_HOST, leads=["test@stage.example.com"])
        self.prod_tables = site_tables(PROD_HOST, leads=["a@x.com", "b@x.com", "c@x.com"])
        self.stage_tables["wp_options"].append(
            {"option_name": "theme_mods", "option_value": serialized_logo(STAGE_HOST)}
        )

        self.stage_wp = FakeWPCLI("stage", self.stage_tables, self.events)
        self.prod_wp = FakeWPCLI("prod", self.prod_tables, self.events)
        self.prod_db = FakeDatabase(self.prod_tables, self.events)
        self.rsync = FakeRsync(self.events)

    def config_dict(self, **overrides) -> dict:
        data = {
            "stage_path": str(self.stage_path),
            "stage_url": f"https://{STAGE_HOST}/",
            "prod_path": str(self.prod_path),
            "prod_url": PROD_HOST,
            "backup_dir": str(self.backup_dir),
            "max_backups": 5,
            "preserved_tables": ["wp_leads"],
            "options": {"verbose": False, "retry_delay": 0},
        }
        data.update(overrides)
        return data

    def write_config(self, **overrides) -> str:
        path = self.root / "deploy_config.json"
        path.write_text(json.dumps(self.config_dict(**overrides)))
        return str(path)

    def handlers(self) -> dict:
        return {
            "stage_wp_cli": self.stage_wp,
            "prod_wp_cli": self.prod_wp,
            "prod_database": self.prod_db,
            "rsync": self.rsync,
        }


@pytest.fixture
def sites(tmp_path: Path) -> Sites:
    """Fresh stage/production pair under tmp_path."""
    return Sites(tmp_path)


@pytest.fixture
def config(sites: Sites):
    """DeploymentConfig for the sites fixture."""
    from core.config_loader import ConfigLoader

    return ConfigLoader.build(sites.config_dict())
