"""Keep selected production tables across a database replacement."""
import logging
import os
import re
from datetime import datetime
from typing import Callable, List

from core.exceptions import DatabaseError
from core.models import TIMESTAMP_FORMAT, DeploymentConfig, PreservedTableSnapshot


_INSERT_START = re.compile(r'^\s*INSERT\s+INTO\b', re.IGNORECASE)


def extract_insert_statements(sql_text: str) -> List[str]:
    """
    Pull the INSERT INTO statements out of a SQL dump.

    mysqldump writes each extended INSERT on a single line ending in ';'.
    Statements that span several lines are joined until the terminating ';'.

    Args:
        sql_text: Dump contents

    Returns:
        Statements without the trailing semicolon
    """
    statements = []
    current: List[str] = []
    for line in sql_text.splitlines():
        if not current:
            if not _INSERT_START.match(line):
                continue
            current.append(line)
        else:
            current.append(line)
        if line.rstrip().endswith(';'):
            statements.append('\n'.join(current).rstrip().rstrip(';'))
            current = []
    if current:
        statements.append('\n'.join(current).rstrip().rstrip(';'))
    return statements


class TablePreservationManager:
    """Snapshots configured tables before migration and puts them back afterwards."""

    def __init__(self, config: DeploymentConfig, wp_cli, database=None, logger=None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            config: Deployment configuration
            wp_cli: WPCLIHandler for production
            database: DatabaseHandler for production (table listing and INSERT fallback)
            logger: Optional logger
            clock: Source of the batch timestamp
        """
        self.config = config
        self.wp_cli = wp_cli
        self.database = database
        self.clock = clock

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def _existing_tables(self) -> set:
        if self.database is not None:
            return set(self.database.list_tables())
        return {line.strip() for line in self.wp_cli.query('SHOW TABLES').splitlines() if line.strip()}

    def snapshot(self) -> List[PreservedTableSnapshot]:
        """
        Export each configured table that exists in production to its own dump.

        Returns:
            Snapshots in table-name order; missing or failed tables are skipped
        """
        if not self.config.preserved_tables:
            self.logger.info("No tables configured for preservation")
            return []

        captured_at = self.clock().strftime(TIMESTAMP_FORMAT)
        existing = self._existing_tables()
        snapshots = []

        for table in sorted(self.config.preserved_tables):
            if table not in existing:
                self.logger.info(f"Preserved table {table} not found in production, skipping")
                continue

            dump_path = os.path.join(self.config.backup_dir, f"preserved_{table}_{captured_at}.sql")
            try:
                self.wp_cli.export_database(dump_path, tables=[table])
            except DatabaseError as e:
                self.logger.warning(f"WARNING: Could not snapshot table {table}, it will NOT be preserved: {e}")
                continue

            snapshots.append(PreservedTableSnapshot(table, dump_path, captured_at))
            self.logger.info(f"✓ Table {table} saved to {dump_path}")

        return snapshots

    def restore(self, snapshots: List[PreservedTableSnapshot]) -> List[PreservedTableSnapshot]:
        """
        Re-import each snapshot; fall back to replaying its INSERT statements.

        Failures are logged as warnings, never raised. Restored dumps are
        deleted; failed dumps stay in backup_dir.

        Returns:
            Snapshots that could not be restored
        """
        failed = []
        for snapshot in snapshots:
            if self._restore_one(snapshot):
                self.logger.info(f"✓ Preserved table {snapshot.table_name} restored")
                try:
                    os.remove(snapshot.dump_file_path)
                except OSError as e:
                    self.logger.warning(f"Could not remove {snapshot.dump_file_path}: {e}")
            else:
                failed.append(snapshot)
                self.logger.warning("!" * 60)
                self.logger.warning(
                    f"WARNING: Preserved table {snapshot.table_name} could not be restored. "
                    f"Its dump was kept at {snapshot.dump_file_path}"
                )
                self.logger.warning("!" * 60)
        return failed

    def _restore_one(self, snapshot: PreservedTableSnapshot) -> bool:
        try:
            self.wp_cli.import_database(snapshot.dump_file_path)
            return True
        except DatabaseError as e:
            self.logger.warning(f"Import of {snapshot.dump_file_path} failed, replaying INSERT statements: {e}")

        if self.database is None:
            return False

        try:
            with open(snapshot.dump_file_path, 'r', encoding='utf-8', errors='replace') as f:
                statements = extract_insert_statements(f.read())
        except OSError as e:
            self.logger.warning(f"Could not read {snapshot.dump_file_path}: {e}")
            return False

        if not statements:
            self.logger.warning(f"No INSERT statements found in {snapshot.dump_file_path}")
            return False

        succeeded, failures = self.database.execute_statements(statements)
        if failures:
            self.logger.warning(
                f"Restored {snapshot.table_name} partially: {succeeded} statement(s) ok, {failures} failed"
            )
            return False
        return True
