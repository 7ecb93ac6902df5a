"""Database handler for direct SQL access to a WordPress database."""
import logging
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import Error

from core.exceptions import DatabaseError
from utils.wp_config import WPDatabaseSettings


_IDENTIFIER = re.compile(r'^[A-Za-z0-9_$]+$')


def quote_identifier(name: str) -> str:
    """
    Quote a table or column name for use in SQL.

    Raises:
        DatabaseError: If the name contains characters outside [A-Za-z0-9_$]
    """
    if not _IDENTIFIER.match(name or ''):
        raise DatabaseError(f"Refusing unsafe SQL identifier: {name!r}")
    return f"`{name}`"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches literally."""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class DatabaseHandler:
    """Handler for statements that need affected-row counts or session state."""

    def __init__(self, settings: WPDatabaseSettings, logger=None):
        """
        Initialize database handler with connection settings.

        Args:
            settings: Credentials parsed from the site's wp-config.php
            logger: Optional logger (defaults to a class-named logger)
        """
        self.settings = settings
        self.table_prefix = settings.table_prefix
        self.connection = None

        # Use provided logger or create a basic one
        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def options_table(self) -> str:
        return f"{self.table_prefix}options"

    def connect(self) -> bool:
        """
        Open the MySQL connection in autocommit mode.

        Returns:
            True if connection successful
        """
        if self.connection is not None:
            return True
        try:
            self.logger.debug(f"Connecting to MySQL database {self.settings.name}@{self.settings.host}...")
            self.connection = mysql.connector.connect(autocommit=True, **self.settings.connection_kwargs())
            return True
        except Error as e:
            self.logger.error(f"Failed to connect to database {self.settings.name}: {e}")
            self.connection = None
            return False

    def disconnect(self) -> None:
        """Close the database connection."""
        if self.connection:
            try:
                self.connection.close()
                self.logger.debug("Database connection closed")
            except Error as e:
                self.logger.error(f"Error closing database connection: {e}")
            finally:
                self.connection = None

    def _cursor(self):
        if self.connection is None and not self.connect():
            raise DatabaseError(f"Not connected to database {self.settings.name}")
        return self.connection.cursor()

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Execute one statement.

        Args:
            sql: Statement with %s placeholders
            params: Placeholder values

        Returns:
            Number of affected rows

        Raises:
            DatabaseError: If the statement fails
        """
        cursor = self._cursor()
        try:
            cursor.execute(sql, params)
            if cursor.with_rows:
                cursor.fetchall()
            return max(cursor.rowcount, 0)
        except Error as e:
            raise DatabaseError(f"SQL failed: {e}")
        finally:
            cursor.close()

    def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Tuple]:
        """Execute a query and return all rows."""
        cursor = self._cursor()
        try:
            cursor.execute(sql, params)
            return cursor.fetchall()
        except Error as e:
            raise DatabaseError(f"Query failed: {e}")
        finally:
            cursor.close()

    def fetch_scalar(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute a query and return the first column of the first row."""
        rows = self.fetch_all(sql, params)
        return rows[0][0] if rows else None

    def ping(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            return self.fetch_scalar("SELECT 1") == 1
        except DatabaseError as e:
            self.logger.error(f"Database {self.settings.name} is not reachable: {e}")
            return False

    def list_tables(self) -> List[str]:
        """List every table in the connected database."""
        return [row[0] for row in self.fetch_all("SHOW TABLES")]

    def drop_table(self, table: str) -> bool:
        """
        Drop a single table.

        Returns:
            True if the table was dropped (or did not exist)
        """
        try:
            self.execute(f"DROP TABLE IF EXISTS {quote_identifier(table)}")
            return True
        except DatabaseError as e:
            self.logger.error(f"Failed to drop table {table}: {e}")
            return False

    def set_foreign_key_checks(self, enabled: bool) -> None:
        """Toggle FOREIGN_KEY_CHECKS on this session."""
        self.execute(f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}")

    def replace_in_column(self, table: str, column: str, old: str, new: str, like_filter: bool = True) -> int:
        """
        Literal substring replacement inside one column.

        Args:
            table: Table name
            column: Column name
            old: Text to find
            new: Replacement text
            like_filter: Restrict the UPDATE to rows containing old

        Returns:
            Number of rows changed
        """
        col = quote_identifier(column)
        sql = f"UPDATE {quote_identifier(table)} SET {col} = REPLACE({col}, %s, %s)"
        params: List[Any] = [old, new]
        if like_filter:
            sql += f" WHERE {col} LIKE %s"
            params.append(f"%{escape_like(old)}%")
        return self.execute(sql, params)

    def count_matches(self, table: str, column: str, needle: str) -> int:
        """Count rows whose column contains needle."""
        col = quote_identifier(column)
        return int(self.fetch_scalar(
            f"SELECT COUNT(*) FROM {quote_identifier(table)} WHERE {col} LIKE %s",
            (f"%{escape_like(needle)}%",)
        ) or 0)

    def fetch_values_containing(self, table: str, column: str, needle: str) -> List[str]:
        """Return column values that contain needle."""
        col = quote_identifier(column)
        rows = self.fetch_all(
            f"SELECT {col} FROM {quote_identifier(table)} WHERE {col} LIKE %s",
            (f"%{escape_like(needle)}%",)
        )
        return [row[0] for row in rows if row[0] is not None]

    def get_option(self, name: str) -> Optional[str]:
        """Read one row of the options table."""
        return self.fetch_scalar(
            f"SELECT option_value FROM {quote_identifier(self.options_table)} WHERE option_name = %s LIMIT 1",
            (name,)
        )

    def update_option(self, name: str, value: str, insert_missing: bool = False) -> bool:
        """
        Update one option, optionally creating it.

        Args:
            name: option_name
            value: New option_value
            insert_missing: Create the row when it does not exist yet

        Returns:
            True if the write succeeded
        """
        table = quote_identifier(self.options_table)
        try:
            if insert_missing:
                self.execute(
                    f"INSERT INTO {table} (option_name, option_value, autoload) "
                    f"VALUES (%s, %s, 'yes') ON DUPLICATE KEY UPDATE option_value = VALUES(option_value)",
                    (name, value)
                )
            else:
                self.execute(f"UPDATE {table} SET option_value = %s WHERE option_name = %s", (value, name))
            return True
        except DatabaseError as e:
            self.logger.error(f"Failed to update option {name}: {e}")
            return False

    def delete_options(self, name: str) -> int:
        """Delete one option by exact name."""
        return self.execute(
            f"DELETE FROM {quote_identifier(self.options_table)} WHERE option_name = %s",
            (name,)
        )

    def delete_options_like(self, prefixes: Iterable[str]) -> int:
        """Delete options whose name starts with any of prefixes."""
        deleted = 0
        for prefix in prefixes:
            deleted += self.execute(
                f"DELETE FROM {quote_identifier(self.options_table)} WHERE option_name LIKE %s",
                (f"{escape_like(prefix)}%",)
            )
        return deleted

    def execute_statements(self, statements: Iterable[str]) -> Tuple[int, int]:
        """
        Execute raw statements one by one, continuing past failures.

        Returns:
            Tuple of (succeeded, failed)
        """
        succeeded = failed = 0
        for statement in statements:
            try:
                self.execute(statement)
                succeeded += 1
            except DatabaseError as e:
                failed += 1
                self.logger.error(f"  Statement failed: {e}")
        return succeeded, failed
