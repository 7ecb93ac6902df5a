"""Production-only WordPress settings applied after a promotion."""
import logging
from typing import List, Tuple

from core.exceptions import DatabaseError
from core.models import DeploymentConfig


# Written with UPDATE only; options that do not exist are left absent
FIXED_SETTINGS: List[Tuple[str, str]] = [
    ('WP_DEBUG', '0'),
    ('WP_DEBUG_LOG', '0'),
    ('WP_DEBUG_DISPLAY', '0'),
    ('comment_moderation', '1'),
    ('moderation_notify', '1'),
    ('disallow_file_edit', '0'),
    ('auto_update_core_major', '0'),
    ('auto_update_core_minor', '1'),
    ('blog_public_robots', ''),
]


class SettingsNormalizer:
    """Idempotent option writes; every failure is a warning."""

    def __init__(self, config: DeploymentConfig, wp_cli, database, cache_cleaner, logger=None):
        self.config = config
        self.wp_cli = wp_cli
        self.database = database
        self.cache_cleaner = cache_cleaner

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.logger.warning(f"WARNING: {message}")

    def ensure_search_visibility(self) -> bool:
        """Set blog_public=1, verify it, and retry through wp-cli if needed."""
        self.logger.info("Ensuring search engines can index the production site...")
        self.database.update_option('blog_public', '1')
        try:
            current = self.database.get_option('blog_public')
        except DatabaseError as e:
            current = None
            self.logger.info(f"Could not read blog_public back: {e}")

        if current is not None and str(current) == '1':
            self.logger.info("✓ Search engine indexing enabled (blog_public = 1)")
            return True

        self.logger.info(f"blog_public reads {current!r}, retrying with WP-CLI")
        if self.wp_cli.option_update('blog_public', '1'):
            self.logger.info("✓ Search engine indexing enabled via WP-CLI")
            return True

        self._warn("Could not enable search engine indexing")
        return False

    def _set_optional(self, name: str, value: str) -> None:
        self.logger.info(f"Setting {name} to: {value}")
        if self.wp_cli.option_update(name, value):
            return
        if not self.database.update_option(name, value, insert_missing=True):
            self._warn(f"Could not set {name}")

    def normalize(self) -> List[str]:
        """
        Apply production settings.

        Returns:
            Warning messages (empty when every write succeeded)
        """
        self.warnings = []
        self.logger.info("Updating WordPress settings for production environment...")

        self.ensure_search_visibility()

        for name, value in FIXED_SETTINGS:
            if not self.database.update_option(name, value):
                self._warn(f"Could not set {name}")
        self.logger.info("✓ Debug, comment moderation and update settings configured for production")

        if self.config.prod_timezone:
            self._set_optional('timezone_string', self.config.prod_timezone)
        if self.config.prod_admin_email:
            self._set_optional('admin_email', self.config.prod_admin_email)

        if not self.cache_cleaner.flush_transients().ok:
            self._warn("Could not clear transients")

        if self.wp_cli.maintenance_mode_deactivate():
            self.logger.info("✓ Maintenance mode is disabled")
        else:
            self.logger.info("Maintenance mode deactivate skipped (not active or unavailable)")

        if not self.cache_cleaner.flush_rewrite_rules().ok:
            self._warn("Could not flush permalinks")

        self.logger.info("Production settings update completed")
        return list(self.warnings)
