"""Handler for WP-CLI operations on one WordPress installation."""
import logging
import re
import shutil
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from core.exceptions import DatabaseError
from utils.shell_exec import execute_command


_REPLACEMENTS_PATTERN = re.compile(r'(\d+)\s+replacements?', re.IGNORECASE)


@dataclass
class SearchReplaceSummary:
    """Parsed output of `wp search-replace`."""

    old: str
    new: str
    dry_run: bool
    total: int = 0
    # (table, column, replacements)
    rows: List[Tuple[str, str, int]] = field(default_factory=list)

    def format_summary(self) -> str:
        lines = [f"'{self.old}' -> '{self.new}': {self.total} replacement(s)"]
        for table, column, count in self.rows:
            if count:
                lines.append(f"  {table}.{column}: {count}")
        return '\n'.join(lines)


def parse_search_replace_output(output: str, old: str, new: str, dry_run: bool) -> SearchReplaceSummary:
    """
    Parse the table and success line printed by `wp search-replace`.

    Args:
        output: stdout of the command
        old: Search string
        new: Replacement string
        dry_run: Whether --dry-run was passed

    Returns:
        SearchReplaceSummary
    """
    summary = SearchReplaceSummary(old=old, new=new, dry_run=dry_run)

    for line in output.splitlines():
        if line.startswith('|'):
            cells = [cell.strip() for cell in line.strip('|').split('|')]
            if len(cells) >= 3 and cells[2].isdigit():
                summary.rows.append((cells[0], cells[1], int(cells[2])))
        elif line.lower().startswith('success'):
            match = _REPLACEMENTS_PATTERN.search(line)
            if match:
                summary.total = int(match.group(1))

    if not summary.total and summary.rows:
        summary.total = sum(count for _, _, count in summary.rows)
    return summary


class WPCLIHandler:
    """Runs wp-cli against a site root given by --path."""

    def __init__(self, site_path: str, wp_cli: str = 'wp', allow_root: bool = True,
                 timeout: Optional[int] = None, logger=None):
        """
        Initialize the handler.

        Args:
            site_path: WordPress root directory
            wp_cli: wp-cli binary
            allow_root: Pass --allow-root to every command
            timeout: Optional per-command timeout in seconds
            logger: Optional logger
        """
        self.site_path = site_path
        self.wp_cli = wp_cli
        self.allow_root = allow_root
        self.timeout = timeout

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def _build_command(self, args: Iterable[str]) -> List[str]:
        command = [self.wp_cli, *args, f'--path={self.site_path}']
        if self.allow_root:
            command.append('--allow-root')
        return command

    def run(self, *args: str, check: bool = True) -> Tuple[int, str, str]:
        """
        Run one wp-cli command.

        Returns:
            Tuple of (exit_code, stdout, stderr)

        Raises:
            RuntimeError: If the command fails and check is True
        """
        command = self._build_command(args)
        self.logger.debug(f"Running: {' '.join(command)}")
        return execute_command(command, check_exit_code=check, timeout=self.timeout)

    def _succeeds(self, *args: str) -> bool:
        try:
            exit_code, _, stderr = self.run(*args, check=False)
        except RuntimeError as e:
            self.logger.debug(f"wp {' '.join(args)} could not run: {e}")
            return False
        if exit_code != 0:
            self.logger.debug(f"wp {' '.join(args)} exited {exit_code}: {stderr.strip()}")
        return exit_code == 0

    def check_database(self) -> bool:
        """Check database connectivity with `db check`, falling back to SELECT 1."""
        if self._succeeds('db', 'check'):
            return True
        self.logger.info(f"'wp db check' failed for {self.site_path}, trying a basic query...")
        return self._succeeds('db', 'query', 'SELECT 1;')

    def query(self, sql: str) -> str:
        """
        Run a query through `wp db query` and return tab-separated output.

        Raises:
            DatabaseError: If the query fails
        """
        try:
            _, stdout, _ = self.run('db', 'query', sql, '--skip-column-names', '--batch')
        except RuntimeError as e:
            raise DatabaseError(f"Query failed on {self.site_path}: {e}")
        return stdout

    def export_database(self, destination: str, tables: Optional[List[str]] = None) -> None:
        """
        Export the database (or selected tables) to a SQL file.

        Raises:
            DatabaseError: If the export fails
        """
        args = ['db', 'export', destination]
        if tables:
            args.append(f"--tables={','.join(tables)}")
        try:
            self.run(*args)
        except RuntimeError as e:
            raise DatabaseError(f"Database export to {destination} failed: {e}")

    def import_database(self, source: str) -> None:
        """
        Import a SQL file.

        Raises:
            DatabaseError: If the import fails
        """
        try:
            self.run('db', 'import', source)
        except RuntimeError as e:
            raise DatabaseError(f"Database import of {source} failed: {e}")

    def reset_database(self) -> None:
        """
        Drop every table with `db reset --yes`.

        Raises:
            DatabaseError: If the reset fails
        """
        try:
            self.run('db', 'reset', '--yes')
        except RuntimeError as e:
            raise DatabaseError(f"Database reset failed: {e}")

    def supports_command(self, *command: str) -> bool:
        """Return True if `wp help <command>` succeeds."""
        return self._succeeds('help', *command)

    def search_replace(self, old: str, new: str, dry_run: bool = False,
                       skip_columns: Iterable[str] = ('guid',)) -> SearchReplaceSummary:
        """
        Run `wp search-replace` (serialization-aware in wp-cli itself).

        Raises:
            DatabaseError: If wp-cli reports a failure
        """
        args = ['search-replace', old, new, '--report-changed-only']
        skip = ','.join(skip_columns)
        if skip:
            args.append(f'--skip-columns={skip}')
        if dry_run:
            args.append('--dry-run')
        try:
            _, stdout, _ = self.run(*args)
        except RuntimeError as e:
            raise DatabaseError(f"search-replace '{old}' -> '{new}' failed: {e}")
        return parse_search_replace_output(stdout, old, new, dry_run)

    def is_installed(self) -> bool:
        return self._succeeds('core', 'is-installed')

    def option_update(self, name: str, value: str) -> bool:
        return self._succeeds('option', 'update', name, value)

    def option_get(self, name: str) -> Optional[str]:
        try:
            exit_code, stdout, _ = self.run('option', 'get', name, check=False)
        except RuntimeError:
            return None
        return stdout.strip() if exit_code == 0 else None

    def cache_flush(self) -> bool:
        return self._succeeds('cache', 'flush')

    def rewrite_flush(self) -> bool:
        return self._succeeds('rewrite', 'flush')

    def transient_delete_all(self) -> bool:
        return self._succeeds('transient', 'delete', '--all')

    def core_update_db(self) -> bool:
        return self._succeeds('core', 'update-db')

    def maintenance_mode_deactivate(self) -> bool:
        return self._succeeds('maintenance-mode', 'deactivate')

    def is_available(self) -> bool:
        """Return True if the wp-cli binary is on PATH."""
        return shutil.which(self.wp_cli) is not None
