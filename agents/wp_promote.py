"""WordPress Promote Agent - Replace a production site with its staging copy."""
import os
import signal
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core.agent_base import AgentBase
from core.exceptions import (
    AgentError,
    ConfigurationError,
    PreconditionError,
    StageFailure,
)
from core.models import SECRETS_FILE, ValidationReport
from handlers.database_handler import DatabaseHandler
from handlers.rsync_handler import RsyncHandler
from handlers.wp_cli_handler import WPCLIHandler
from managers.backup_manager import BackupManager
from managers.cache_cleaner import CacheCleaner
from managers.database_migrator import DatabaseMigrator
from managers.deployment_verifier import DeploymentVerifier
from managers.file_sync import FileSynchronizer
from managers.rewrite_validator import RewriteValidator
from managers.settings_normalizer import SettingsNormalizer
from managers.table_preservation import TablePreservationManager
from managers.url_rewriter import URLRewriter
from utils.retry import RetryPolicy
from utils.wp_config import read_wp_config


MANUAL_CHECKLIST = [
    "Visit https://{prod_url} to ensure it's working correctly",
    "Test critical functionality (forms, e-commerce, etc.)",
    "Check that SSL certificates are working",
    "Verify any third-party integrations",
    "Test user login functionality",
    "Check that contact forms are working",
]


class PromoteAgent(AgentBase):
    """Agent that promotes the staging site to production."""

    def __init__(self, config_path: str, verbose: Optional[bool] = None, assume_yes: bool = False,
                 handlers: Optional[Dict[str, Any]] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        """
        Initialize the promote agent.

        Args:
            config_path: Path to the configuration file
            verbose: Overrides options.verbose when set
            assume_yes: Skip interactive confirmations
            handlers: Prebuilt collaborators keyed by 'stage_wp_cli', 'prod_wp_cli',
                'prod_database' and 'rsync'; built from the configuration when omitted
            sleep: Delay function used between retries
        """
        super().__init__(config_path, verbose=verbose, assume_yes=assume_yes)
        self._injected = handlers or {}
        self.stage_wp_cli = None
        self.prod_wp_cli = None
        self.prod_database = None
        self.rsync = None
        self.backup_path: Optional[str] = None
        self.warnings = []
        self.retry = RetryPolicy(
            attempts=self.config.retry_attempts,
            delay=self.config.retry_delay,
            sleep=sleep or time.sleep,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _create_handlers(self) -> None:
        """Build wp-cli, rsync and SQL handlers unless they were injected."""
        self.stage_wp_cli = self._injected.get('stage_wp_cli') or WPCLIHandler(
            self.config.stage_path, self.config.wp_cli, self.config.allow_root, logger=self.logger
        )
        self.prod_wp_cli = self._injected.get('prod_wp_cli') or WPCLIHandler(
            self.config.prod_path, self.config.wp_cli, self.config.allow_root, logger=self.logger
        )
        self.rsync = self._injected.get('rsync') or RsyncHandler(logger=self.logger)

        self.prod_database = self._injected.get('prod_database')
        if self.prod_database is None:
            try:
                settings = read_wp_config(self.config.prod_path)
            except ConfigurationError as e:
                raise PreconditionError(f"Cannot read production database settings: {e}")
            self.prod_database = DatabaseHandler(settings, logger=self.logger)

    def _cache_cleaner(self) -> CacheCleaner:
        return CacheCleaner(self.config.prod_path, self.prod_wp_cli, self.prod_database, self.retry, self.logger)

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------

    def preflight(self) -> None:
        """
        Check every requirement before anything is modified.

        Raises:
            PreconditionError: If a requirement is missing
        """
        self.logger.info("Checking requirements...")
        self._create_handlers()

        if not self.prod_wp_cli.is_available():
            raise PreconditionError(f"WP-CLI ({self.config.wp_cli}) is not installed or not on PATH")
        if not self.rsync.is_available():
            raise PreconditionError("rsync is not installed or not on PATH")

        for label, path in (('Stage', self.config.stage_path), ('Production', self.config.prod_path)):
            if not os.path.isdir(path):
                raise PreconditionError(f"{label} path does not exist: {path}")
            if not os.path.isfile(os.path.join(path, SECRETS_FILE)):
                raise PreconditionError(f"{label} path has no {SECRETS_FILE}: {path}")

        try:
            os.makedirs(self.config.backup_dir, exist_ok=True)
        except OSError as e:
            raise PreconditionError(f"Cannot create backup directory {self.config.backup_dir}: {e}")
        if not os.access(self.config.backup_dir, os.W_OK):
            raise PreconditionError(f"Backup directory is not writable: {self.config.backup_dir}")

        if not self.stage_wp_cli.check_database():
            raise PreconditionError("Cannot connect to stage database")
        if not self.prod_wp_cli.check_database():
            raise PreconditionError("Cannot connect to production database")
        if not self.prod_database.connect():
            raise PreconditionError("Cannot open a SQL connection to the production database")

        self.logger.info("✓ All requirements met")

    # ------------------------------------------------------------------
    # Confirmations and interrupts
    # ------------------------------------------------------------------

    def _confirm_start(self) -> bool:
        c = self.config
        tables = ', '.join(sorted(c.preserved_tables)) or '(none)'
        message = (
            f"Stage:      {c.stage_path} ({c.stage_url})\n"
            f"Production: {c.prod_path} ({c.prod_url})\n"
            f"Backups:    {c.backup_dir} (keeping {c.max_backups})\n"
            f"Preserved tables: {tables}\n\n"
            f"This will REPLACE your production site with the staging site content.\n"
            f"A full backup will be created before proceeding."
        )
        return self._ask_confirmation("PROMOTE STAGE TO PRODUCTION", message)

    def _confirm_rewrite(self, summary: str) -> bool:
        for line in summary.splitlines():
            self.logger.warning(line)
        return self._ask_confirmation("URL REWRITE", "Apply the URL replacements above?")

    def _handle_interrupt(self, signum, frame) -> None:
        self.logger.error(
            f"Interrupted by signal {signum}. Production may be in a partial state. "
            f"Backup: {self.backup_path or 'not created yet'}"
        )
        raise SystemExit(1)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self) -> int:
        """
        Execute the promotion.

        Returns:
            0 on success or cancellation, 1 on failure
        """
        self._log_section("WORDPRESS STAGE TO PRODUCTION PROMOTION")
        self.logger.info(f"Stage: {self.config.stage_path} ({self.config.stage_url})")
        self.logger.info(f"Production: {self.config.prod_path} ({self.config.prod_url})")

        if not self._confirm_start():
            self.logger.warning("Deployment cancelled by user")
            return 0

        previous = {sig: signal.signal(sig, self._handle_interrupt) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            self.preflight()
            self._run_pipeline()
            return 0
        except PreconditionError as e:
            self.logger.error(f"Requirement check failed: {e}")
            return 1
        except AgentError as e:
            self.logger.error(f"Deployment failed: {e}")
            if self.backup_path:
                self.logger.error(f"Production may be in a partial state. Restore from: {self.backup_path}")
            return 1
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            if self.prod_database is not None:
                self.prod_database.disconnect()

    def _run_pipeline(self) -> None:
        cache_cleaner = self._cache_cleaner()
        preservation = TablePreservationManager(self.config, self.prod_wp_cli, self.prod_database, self.logger)
        rewriter = URLRewriter(self.config, self.prod_wp_cli, self.prod_database, self.logger)
        validator = RewriteValidator(self.config, self.prod_database, self.logger)

        self._log_section("STEP 1: BACKUP PRODUCTION")
        backups = BackupManager(self.config, self.prod_wp_cli, self.rsync, cache_cleaner, self.logger)
        archive = backups.create()
        self.backup_path = archive.file_path
        backups.prune()

        self._log_section("STEP 2: PRESERVE TABLES")
        snapshots = preservation.snapshot()

        self._log_section("STEP 3: SYNC FILES")
        sync_report = FileSynchronizer(self.config, self.rsync, cache_cleaner, self.logger).sync()
        if sync_report.failed:
            self.warnings.append(f"{sync_report.failed} permission change(s) failed")

        self._log_section("STEP 4: MIGRATE DATABASE")
        migrator = DatabaseMigrator(
            self.config, self.stage_wp_cli, self.prod_wp_cli, self.prod_database, preservation, self.logger
        )
        for snapshot in migrator.migrate(snapshots):
            self.warnings.append(
                f"Preserved table {snapshot.table_name} not restored (dump: {snapshot.dump_file_path})"
            )

        self._log_section("STEP 5: UPDATE URLS")
        rewriter.rewrite(self._confirm_rewrite)

        self._log_section("STEP 6: VALIDATE URLS")
        report = self._validate(validator, rewriter)

        self._log_section("STEP 7: FLUSH CACHES")
        for outcome in cache_cleaner.flush():
            if not outcome.ok:
                self.warnings.append(f"{outcome.name} skipped")

        self._log_section("STEP 8: VERIFY DEPLOYMENT")
        verification = DeploymentVerifier(self.config, self.prod_wp_cli, self.prod_database, self.logger).verify()
        self.warnings.extend(verification.warnings)

        self._log_section("STEP 9: PRODUCTION SETTINGS")
        self.warnings.extend(
            SettingsNormalizer(self.config, self.prod_wp_cli, self.prod_database, cache_cleaner, self.logger).normalize()
        )

        self._show_summary(report)

    def _validate(self, validator: RewriteValidator, rewriter: URLRewriter) -> ValidationReport:
        """Validate, repair once with an unconditional pass, and validate again."""
        report = validator.validate()
        validator.log_report(report)

        if not report.passed:
            self.logger.warning("Residual staging URLs found, running one repair pass...")
            try:
                rewriter.rewrite_unconditional()
            except StageFailure as e:
                self.logger.warning(f"Repair pass failed: {e}")

            report = validator.validate()
            validator.log_report(report)
            if not report.passed:
                self.warnings.append(
                    f"URL validation still failing after repair ({report.total_residual} residual reference(s))"
                )

        if report.corrupted_total:
            self.warnings.append(f"{report.corrupted_total} serialized value(s) with broken string lengths")
        return report

    def _show_summary(self, report: ValidationReport) -> None:
        title = "DEPLOYMENT COMPLETED SUCCESSFULLY" if not self.warnings else "DEPLOYMENT COMPLETED WITH WARNINGS"
        self._log_section(title)
        self.logger.warning(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.warning(f"Backup created: {self.backup_path}")
        self.logger.warning(f"Stage site: {self.config.stage_url}")
        self.logger.warning(f"Production site: {self.config.prod_url}")
        self.logger.warning(
            f"Preserved tables: {', '.join(sorted(self.config.preserved_tables)) or '(none)'}"
        )
        self.logger.warning(f"Residual staging URLs: {report.total_residual}")
        for warning in self.warnings:
            self.logger.warning(f"  ! {warning}")
        self.logger.warning("")
        self.logger.warning("IMPORTANT: Please verify the following manually:")
        for number, item in enumerate(MANUAL_CHECKLIST, 1):
            self.logger.warning(f"{number}. {item.format(prod_url=self.config.prod_url)}")
        self.logger.warning("")
        self.logger.warning(f"If issues occur, you can restore from: {self.backup_path}")
        self.logger.warning("=" * 60)

    # ------------------------------------------------------------------
    # Diagnose
    # ------------------------------------------------------------------

    def diagnose(self) -> int:
        """
        Read-only health report of both sites. Always returns 0.
        """
        self._log_section("DIAGNOSTICS")
        try:
            self._create_handlers()
        except PreconditionError as e:
            self.logger.warning(f"  {e}")

        self.logger.warning(f"WP-CLI available: {'yes' if self.prod_wp_cli.is_available() else 'NO'}")
        self.logger.warning(f"rsync available: {'yes' if self.rsync.is_available() else 'NO'}")

        for label, wp_cli, path in (('Stage', self.stage_wp_cli, self.config.stage_path),
                                    ('Production', self.prod_wp_cli, self.config.prod_path)):
            has_secrets = os.path.isfile(os.path.join(path, SECRETS_FILE))
            self.logger.warning(f"{label} path {path}: {'ok' if has_secrets else f'missing {SECRETS_FILE}'}")
            if not os.path.isdir(path):
                continue
            connected = wp_cli.check_database()
            self.logger.warning(f"{label} database reachable: {'yes' if connected else 'NO'}")
            if connected:
                self.logger.warning(f"{label} installed: {'yes' if wp_cli.is_installed() else 'NO'}")
                self.logger.warning(f"{label} siteurl: {wp_cli.option_get('siteurl') or 'unknown'}")

        if self.prod_database is not None and self.prod_database.connect():
            try:
                validator = RewriteValidator(self.config, self.prod_database, self.logger)
                report = validator.validate()
                self.logger.warning("Production URL check:")
                for line in report.format_report().splitlines():
                    self.logger.warning(line)
            except AgentError as e:
                self.logger.warning(f"URL check unavailable: {e}")
            finally:
                self.prod_database.disconnect()

        inventory = CacheCleaner(self.config.prod_path, self.prod_wp_cli, logger=self.logger).inventory()
        if inventory:
            self.logger.warning("Production cache directories:")
            for directory, count in inventory.items():
                self.logger.warning(f"  {directory}: {count} file(s)")
        else:
            self.logger.warning("Production cache directories: none found")

        self.logger.warning("=" * 60)
        return 0
