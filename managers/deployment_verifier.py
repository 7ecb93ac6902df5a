"""Post-promotion sanity checks on the production site."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from core.config_loader import normalize_url
from core.exceptions import DatabaseError, StageFailure
from core.models import DeploymentConfig
from handlers.database_handler import quote_identifier


# A core install has 12 tables; fewer means an incomplete import
MIN_CORE_TABLES = 10


@dataclass
class VerificationResult:
    installed: bool = False
    site_url: Optional[str] = None
    site_url_ok: bool = False
    published_posts: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


class DeploymentVerifier:
    """Checks connectivity, install status, siteurl and content."""

    def __init__(self, config: DeploymentConfig, wp_cli, database, logger=None):
        self.config = config
        self.wp_cli = wp_cli
        self.database = database

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def _is_production_url(self, url: str) -> bool:
        host = normalize_url(url)
        prod = self.config.prod_url
        return host == prod or host.startswith(prod + '/')

    def verify(self) -> VerificationResult:
        """
        Run the checks.

        Raises:
            StageFailure: If the production database is not reachable
        """
        self.logger.info("Verifying deployment...")
        result = VerificationResult()

        if not self.database.ping():
            raise StageFailure("Database connection verification failed")
        self.logger.info("Database connection verified")

        try:
            result.site_url = self.database.get_option('siteurl')
        except DatabaseError as e:
            self.logger.info(f"Could not read siteurl: {e}")

        if self.wp_cli.is_installed():
            result.installed = True
            self.logger.info("WordPress installation verified via WP-CLI")
        elif result.site_url:
            result.installed = True
            self.logger.info(f"WordPress installation verified via database (site URL: {result.site_url})")
        else:
            try:
                tables = [t for t in self.database.list_tables() if t.startswith(self.database.table_prefix)]
            except DatabaseError:
                tables = []
            if len(tables) > MIN_CORE_TABLES:
                result.installed = True
                self.logger.info(f"WordPress installation verified via table count ({len(tables)} tables found)")
            else:
                result.warnings.append("WordPress installation verification inconclusive")

        if result.site_url and self._is_production_url(result.site_url):
            result.site_url_ok = True
            self.logger.info(f"Site URL correctly set to production: {result.site_url}")
        else:
            result.warnings.append(
                f"Site URL may not be correctly set: {result.site_url} (expected to contain: {self.config.prod_url})"
            )

        try:
            result.published_posts = int(self.database.fetch_scalar(
                f"SELECT COUNT(*) FROM {quote_identifier(self.database.table_prefix + 'posts')} WHERE post_status = 'publish'"
            ) or 0)
        except (DatabaseError, TypeError, ValueError) as e:
            self.logger.info(f"Could not count published posts: {e}")

        if result.published_posts:
            self.logger.info(f"Content verification passed: {result.published_posts} published posts found")
        else:
            result.warnings.append(f"No published posts found (result: {result.published_posts})")

        for warning in result.warnings:
            self.logger.warning(f"WARNING: {warning}")
        self.logger.info("Deployment verification completed")
        return result
