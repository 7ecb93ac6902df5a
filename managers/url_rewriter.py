"""Rewrite staging URLs to production URLs in the production database."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

from core.exceptions import DatabaseError, StageFailure
from core.models import DeploymentConfig, RewriteTarget, rewrite_targets


@dataclass
class RewriteResult:
    """What a rewrite pass did."""

    method: str
    # (old, new) -> replacements or affected rows
    counts: Dict[Tuple[str, str], int] = field(default_factory=dict)
    failed_targets: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def replacement_pairs(stage_url: str, prod_url: str) -> List[Tuple[str, str]]:
    """
    Ordered (old, new) pairs for one rewrite pass.

    Scheme-qualified forms go first so that both http:// and https://
    staging URLs end up as https:// production URLs before the bare host
    replacement runs.
    """
    return [
        (f'http://{stage_url}', f'https://{prod_url}'),
        (f'https://{stage_url}', f'https://{prod_url}'),
        (stage_url, prod_url),
    ]


class URLRewriter:
    """Runs wp search-replace when available and direct SQL otherwise."""

    def __init__(self, config: DeploymentConfig, wp_cli, database, logger=None):
        """
        Args:
            config: Deployment configuration
            wp_cli: WPCLIHandler for production
            database: DatabaseHandler for production
            logger: Optional logger
        """
        self.config = config
        self.wp_cli = wp_cli
        self.database = database

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def pairs(self) -> List[Tuple[str, str]]:
        return replacement_pairs(self.config.stage_url, self.config.prod_url)

    @property
    def targets(self) -> List[RewriteTarget]:
        return rewrite_targets(self.database.table_prefix)

    def rewrite(self, confirm: Callable[[str], bool]) -> RewriteResult:
        """
        Preview, confirm and apply the rewrite.

        Args:
            confirm: Receives the dry-run summary; returning False cancels

        Returns:
            RewriteResult of the applied pass

        Raises:
            StageFailure: If the operator declines, or both paths fail
        """
        self.logger.info(f"Updating URLs from {self.config.stage_url} to {self.config.prod_url}...")

        if self.wp_cli.supports_command('search-replace'):
            try:
                preview = self._preview_with_wp_cli()
            except DatabaseError as e:
                self.logger.warning(f"WP-CLI search-replace dry run failed, using direct SQL: {e}")
            else:
                if not confirm(preview):
                    raise StageFailure("URL rewrite cancelled by operator")
                try:
                    return self._apply_with_wp_cli()
                except DatabaseError as e:
                    self.logger.warning(f"WP-CLI search-replace failed, using direct SQL replacement: {e}")
                return self._apply_with_sql(like_filter=True)
        else:
            self.logger.info("WP-CLI search-replace is not available, using direct SQL replacement")

        preview = self._preview_with_sql()
        if not confirm(preview):
            raise StageFailure("URL rewrite cancelled by operator")
        return self._apply_with_sql(like_filter=True)

    def rewrite_unconditional(self) -> RewriteResult:
        """Run the SQL replacements on every row without confirmation."""
        self.logger.info("Running unconditional URL replacement on all rewrite targets...")
        return self._apply_with_sql(like_filter=False)

    def _preview_with_wp_cli(self) -> str:
        lines = ["Planned URL replacements (wp search-replace --dry-run):"]
        for old, new in self.pairs:
            summary = self.wp_cli.search_replace(old, new, dry_run=True)
            lines.append(summary.format_summary())
        return '\n'.join(lines)

    def _preview_with_sql(self) -> str:
        lines = ["Planned URL replacements (direct SQL):"]
        for old, new in self.pairs:
            lines.append(f"'{old}' -> '{new}'")
        for target in self.targets:
            try:
                count = self.database.count_matches(target.table, target.column, self.config.stage_url)
            except DatabaseError as e:
                lines.append(f"  {target}: unavailable ({e})")
                continue
            if count:
                lines.append(f"  {target}: {count} row(s)")
        return '\n'.join(lines)

    def _apply_with_wp_cli(self) -> RewriteResult:
        result = RewriteResult(method='wp-cli')
        for old, new in self.pairs:
            summary = self.wp_cli.search_replace(old, new)
            result.counts[(old, new)] = summary.total
            self.logger.info(f"  {summary.format_summary()}")
        self.logger.info(f"✓ URL replacement completed via WP-CLI ({result.total} replacements)")
        return result

    def _apply_with_sql(self, like_filter: bool) -> RewriteResult:
        result = RewriteResult(method='sql')
        for old, new in self.pairs:
            affected = 0
            for target in self.targets:
                try:
                    rows = self.database.replace_in_column(target.table, target.column, old, new, like_filter)
                except DatabaseError as e:
                    self.logger.warning(f"  {target}: replacement of '{old}' failed: {e}")
                    if str(target) not in result.failed_targets:
                        result.failed_targets.append(str(target))
                    continue
                if rows:
                    self.logger.info(f"  {target}: {rows} row(s) updated for '{old}'")
                affected += rows
            result.counts[(old, new)] = affected

        if result.failed_targets and len(result.failed_targets) == len(self.targets):
            raise StageFailure("URL replacement failed on every target table")
        self.logger.info(f"✓ URL replacement completed via SQL ({result.total} row updates)")
        return result
