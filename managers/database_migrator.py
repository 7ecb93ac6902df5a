"""Replace the production database with the staging database."""
import logging
import os
from datetime import datetime
from typing import Callable, List

from core.exceptions import DatabaseError, StageFailure
from core.models import TIMESTAMP_FORMAT, DeploymentConfig, PreservedTableSnapshot


class DatabaseMigrator:
    """Exports staging, clears production (minus preserved tables) and imports."""

    def __init__(self, config: DeploymentConfig, stage_wp_cli, prod_wp_cli, prod_database,
                 preservation, logger=None, clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            config: Deployment configuration
            stage_wp_cli: WPCLIHandler for staging
            prod_wp_cli: WPCLIHandler for production
            prod_database: DatabaseHandler for production (drops and FK checks share its session)
            preservation: TablePreservationManager that restores the snapshots
            logger: Optional logger
            clock: Source of the export timestamp
        """
        self.config = config
        self.stage_wp_cli = stage_wp_cli
        self.prod_wp_cli = prod_wp_cli
        self.prod_database = prod_database
        self.preservation = preservation
        self.clock = clock

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def migrate(self, snapshots: List[PreservedTableSnapshot]) -> List[PreservedTableSnapshot]:
        """
        Run the migration.

        Args:
            snapshots: Preserved table snapshots taken before this call

        Returns:
            Snapshots that could not be restored (warnings, not failures)

        Raises:
            StageFailure: If the staging export, the reset or the import fails
        """
        self.logger.info("Starting database migration...")
        stage_dump = os.path.join(
            self.config.backup_dir, f"stage_export_{self.clock().strftime(TIMESTAMP_FORMAT)}.sql"
        )

        self.logger.info("Exporting stage database...")
        try:
            self.stage_wp_cli.export_database(stage_dump)
        except DatabaseError as e:
            raise StageFailure(f"Stage database export failed: {e}")

        try:
            if snapshots:
                self._drop_unpreserved_tables({s.table_name for s in snapshots})
            else:
                self.logger.info("Dropping all production tables...")
                try:
                    self.prod_wp_cli.reset_database()
                except DatabaseError as e:
                    raise StageFailure(f"Production database reset failed: {e}")

            self.logger.info("Importing stage database into production...")
            try:
                self.prod_wp_cli.import_database(stage_dump)
            except DatabaseError as e:
                raise StageFailure(f"Stage database import failed: {e}")

            failed = self.preservation.restore(snapshots) if snapshots else []
        finally:
            try:
                os.remove(stage_dump)
            except FileNotFoundError:
                pass
            except OSError as e:
                self.logger.warning(f"Could not remove stage export {stage_dump}: {e}")

        self.logger.info("Database migration completed")
        return failed

    def _drop_unpreserved_tables(self, preserved: set) -> None:
        """Drop production tables one by one, keeping the preserved ones."""
        try:
            tables = self.prod_database.list_tables()
        except DatabaseError as e:
            raise StageFailure(f"Could not list production tables: {e}")

        to_drop = [table for table in tables if table not in preserved]
        self.logger.info(f"Dropping {len(to_drop)} production table(s), preserving: {', '.join(sorted(preserved))}")

        try:
            self.prod_database.set_foreign_key_checks(False)
        except DatabaseError as e:
            raise StageFailure(f"Could not disable foreign key checks: {e}")

        try:
            for table in to_drop:
                if not self.prod_database.drop_table(table):
                    self.logger.warning(f"WARNING: Could not drop table {table}")
        finally:
            try:
                self.prod_database.set_foreign_key_checks(True)
            except DatabaseError as e:
                self.logger.warning(f"Could not re-enable foreign key checks: {e}")
