"""Tests for the staging to production database migration."""

from datetime import datetime

import pytest

from core.exceptions import StageFailure
from managers.database_migrator import DatabaseMigrator
from managers.table_preservation import TablePreservationManager


STAGE_HOST = "stage.example.com"
PROD_HOST = "example.com"


def _clock() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def preservation(config, sites) -> TablePreservationManager:
    sites.backup_dir.mkdir()
    return TablePreservationManager(config, sites.prod_wp, sites.prod_db, clock=_clock)


def _migrator(config, sites, preservation) -> DatabaseMigrator:
    return DatabaseMigrator(config, sites.stage_wp, sites.prod_wp, sites.prod_db, preservation, clock=_clock)


class TestMigrate:
    """Migration with and without preserved tables."""

    def test_preserved_rows_survive(self, config, sites, preservation) -> None:
        """Stage content arrives; preserved production rows win over stage rows."""
        snapshots = preservation.snapshot()

        failed = _migrator(config, sites, preservation).migrate(snapshots)

        assert failed == []
        assert [row["email"] for row in sites.prod_tables["wp_leads"]] == ["a@x.com", "b@x.com", "c@x.com"]
        assert STAGE_HOST in sites.prod_tables["wp_options"][0]["option_value"]
        assert not list(sites.backup_dir.glob("stage_export_*"))
        assert not list(sites.backup_dir.glob("preserved_*"))

    def test_drops_only_unpreserved_with_fk_checks_toggled(self, config, sites, preservation) -> None:
        """FK checks wrap the drops and the preserved table is never dropped."""
        snapshots = preservation.snapshot()

        _migrator(config, sites, preservation).migrate(snapshots)

        drops = [e for e in sites.events if e[0] in ("drop", "fk")]
        assert drops[0] == ("fk", False)
        assert drops[-1] == ("fk", True)
        dropped = {e[1] for e in drops if e[0] == "drop"}
        assert "wp_leads" not in dropped
        assert "wp_options" in dropped
        assert ("reset", "prod") not in sites.events

    def test_reset_without_snapshots(self, config, sites, preservation) -> None:
        """With nothing preserved the whole database is reset."""
        sites.prod_tables["wp_prod_only"] = [{"x": "1"}]

        _migrator(config, sites, preservation).migrate([])

        assert ("reset", "prod") in sites.events
        assert "wp_prod_only" not in sites.prod_tables
        assert sites.prod_tables["wp_leads"][0]["email"] == "test@stage.example.com"

    def test_drop_failure_is_warning(self, config, sites, preservation, caplog) -> None:
        """A table that cannot be dropped does not stop the migration."""
        snapshots = preservation.snapshot()
        sites.prod_db.fail_drop.add("wp_users")

        _migrator(config, sites, preservation).migrate(snapshots)

        assert "Could not drop table wp_users" in caplog.text
        fk_events = [e for e in sites.events if e[0] == "fk"]
        assert fk_events == [("fk", False), ("fk", True)]
        assert "wp_users" in sites.prod_tables

    def test_stage_export_failure(self, config, sites, preservation) -> None:
        """Nothing in production is touched when the stage export fails."""
        sites.stage_wp.fail_export_for.add(None)

        with pytest.raises(StageFailure, match="Stage database export failed"):
            _migrator(config, sites, preservation).migrate([])

        assert sites.prod_tables["wp_options"][0]["option_value"] == f"https://{PROD_HOST}"
        assert ("reset", "prod") not in sites.events

    def test_import_failure(self, config, sites, preservation) -> None:
        """A failed import is fatal and the stage dump is still removed."""
        sites.prod_wp.fail_import = True

        with pytest.raises(StageFailure, match="import failed"):
            _migrator(config, sites, preservation).migrate([])

        assert not list(sites.backup_dir.glob("stage_export_*"))

    def test_reset_failure(self, config, sites, preservation) -> None:
        """A failed reset is fatal."""
        sites.prod_wp.fail_reset = True

        with pytest.raises(StageFailure, match="reset failed"):
            _migrator(config, sites, preservation).migrate([])

    def test_failed_preserved_restore_reported(self, config, sites, preservation) -> None:
        """Snapshots that cannot be restored are returned, not raised."""
        snapshots = preservation.snapshot()
        sites.prod_wp.fail_import_paths.add(snapshots[0].dump_file_path)

        failed = _migrator(config, sites, preservation).migrate(snapshots)

        assert failed == snapshots
