"""Cache directory cleanup and WordPress cache flushing."""
import logging
import os
import shutil
from typing import Dict, List, Optional, Tuple

from utils.retry import RetryOutcome, RetryPolicy


# Relative to the site root; page caches of common caching plugins
CACHE_DIRECTORIES = [
    'wp-content/cache',
    'wp-content/uploads/cache',
    'wp-content/w3tc-config',
    'wp-content/wp-rocket-config',
    'wp-content/litespeed',
    'wp-content/et-cache',
    'wp-content/autoptimize',
    'wp-content/wp-fastest-cache',
    'wp-content/wp-super-cache',
    'wp-content/breeze',
    'wp-content/swift-performance',
    'wp-content/hummingbird-assets',
    'wp-content/sg-cachepress',
    'wp-content/endurance-page-cache',
    'wp-content/object-cache',
    'wp-content/db-cache',
    'wp-content/advanced-cache',
]

# Generated page builder assets; the directories themselves are kept
BUILDER_CACHE_DIRECTORIES = [
    'wp-content/uploads/bricks/css',
    'wp-content/uploads/bricks/js',
]

CACHE_FILES = [
    'wp-content/advanced-cache.php',
    'wp-content/object-cache.php',
    'wp-content/db-cache.php',
    'wp-content/wp-cache-config.php',
    '.htaccess.bak',
    'wp-content/.htaccess.bak',
]

CACHE_FILE_SUFFIXES = ('.cache',)
STALE_ASSET_SUFFIXES = ('.tmp', '.temp', '.min.css.gz', '.min.js.gz')

TRANSIENT_PREFIXES = ['_transient_', '_site_transient_']


class CacheCleaner:
    """Removes stale cache files and flushes WordPress caches with retries."""

    def __init__(self, site_path: str, wp_cli, database=None,
                 retry: Optional[RetryPolicy] = None, logger=None):
        """
        Args:
            site_path: WordPress root directory
            wp_cli: WPCLIHandler for the site
            database: Optional DatabaseHandler used for SQL fallbacks
            retry: Retry policy for transient wp-cli failures
            logger: Optional logger
        """
        self.site_path = site_path
        self.wp_cli = wp_cli
        self.database = database

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

        self.retry = retry or RetryPolicy(logger=self.logger)

    def clear_cache_files(self) -> Tuple[int, int]:
        """
        Delete cache directories and files under the site root.

        Returns:
            Tuple of (directories_removed, files_removed)
        """
        dirs_removed = 0
        files_removed = 0

        for relative in CACHE_DIRECTORIES:
            path = os.path.join(self.site_path, relative)
            if os.path.isdir(path) and not os.path.islink(path):
                try:
                    shutil.rmtree(path)
                    dirs_removed += 1
                except OSError as e:
                    self.logger.warning(f"Could not remove cache directory {relative}: {e}")

        for relative in BUILDER_CACHE_DIRECTORIES:
            path = os.path.join(self.site_path, relative)
            if not os.path.isdir(path):
                continue
            for entry in os.listdir(path):
                entry_path = os.path.join(path, entry)
                try:
                    if os.path.isdir(entry_path) and not os.path.islink(entry_path):
                        shutil.rmtree(entry_path)
                    else:
                        os.remove(entry_path)
                    files_removed += 1
                except OSError as e:
                    self.logger.warning(f"Could not remove {entry_path}: {e}")

        for relative in CACHE_FILES:
            path = os.path.join(self.site_path, relative)
            if os.path.isfile(path):
                try:
                    os.remove(path)
                    files_removed += 1
                except OSError as e:
                    self.logger.warning(f"Could not remove cache file {relative}: {e}")

        for current, dirs, files in os.walk(self.site_path):
            if '.cache' in dirs:
                try:
                    shutil.rmtree(os.path.join(current, '.cache'))
                    dirs_removed += 1
                except OSError as e:
                    self.logger.warning(f"Could not remove {os.path.join(current, '.cache')}: {e}")
                dirs.remove('.cache')

            in_wp_content = os.path.relpath(current, self.site_path).split(os.sep)[0] == 'wp-content'
            for name in files:
                if name.endswith(CACHE_FILE_SUFFIXES) or (in_wp_content and name.endswith(STALE_ASSET_SUFFIXES)):
                    try:
                        os.remove(os.path.join(current, name))
                        files_removed += 1
                    except OSError as e:
                        self.logger.warning(f"Could not remove {os.path.join(current, name)}: {e}")

        if dirs_removed or files_removed:
            self.logger.info(f"✓ Cache cleanup completed ({dirs_removed} directories, {files_removed} files removed)")
        else:
            self.logger.info("✓ Cache cleanup completed (no cache files found)")
        return dirs_removed, files_removed

    def inventory(self) -> Dict[str, int]:
        """Count files in every known cache directory that exists."""
        counts = {}
        for relative in CACHE_DIRECTORIES + BUILDER_CACHE_DIRECTORIES:
            path = os.path.join(self.site_path, relative)
            if os.path.isdir(path):
                counts[relative] = sum(len(files) for _, _, files in os.walk(path))
        return counts

    def _delete_transients_sql(self) -> bool:
        deleted = self.database.delete_options_like(TRANSIENT_PREFIXES)
        self.logger.info(f"Deleted {deleted} transient option(s) via SQL")
        return True

    def _delete_rewrite_rules_sql(self) -> bool:
        self.database.delete_options('rewrite_rules')
        self.logger.info("Deleted rewrite_rules option via SQL; WordPress regenerates it on next request")
        return True

    def flush_transients(self) -> RetryOutcome:
        fallback = self._delete_transients_sql if self.database else None
        return self.retry.run('Transient cleanup', self.wp_cli.transient_delete_all, fallback)

    def flush_rewrite_rules(self) -> RetryOutcome:
        fallback = self._delete_rewrite_rules_sql if self.database else None
        return self.retry.run('Rewrite rules flush', self.wp_cli.rewrite_flush, fallback)

    def flush_object_cache(self) -> RetryOutcome:
        return self.retry.run('Object cache flush', self.wp_cli.cache_flush)

    def update_core_database(self) -> RetryOutcome:
        return self.retry.run('Core database update', self.wp_cli.core_update_db)

    def flush(self) -> List[RetryOutcome]:
        """
        Flush rewrite rules, object cache, core DB schema and transients.

        Failures are logged and never raised.

        Returns:
            One RetryOutcome per operation
        """
        self.logger.info("Flushing WordPress cache and rewrite rules...")
        outcomes = [
            self.flush_rewrite_rules(),
            self.flush_object_cache(),
            self.update_core_database(),
            self.flush_transients(),
        ]
        failed = [outcome.name for outcome in outcomes if not outcome.ok]
        if failed:
            self.logger.warning(f"Cache flush completed with skipped operations: {', '.join(failed)}")
        else:
            self.logger.info("Cache flush completed")
        return outcomes
