"""WordPress Restore Agent - Put a production backup archive back in place."""
import os
import signal
from typing import Any, Callable, Dict, List, Optional

from core.agent_base import AgentBase
from core.exceptions import AgentError, ValidationError
from core.models import BackupArchive
from handlers.rsync_handler import RsyncHandler
from handlers.wp_cli_handler import WPCLIHandler
from managers.backup_manager import BackupManager
from managers.cache_cleaner import CacheCleaner
from utils.retry import RetryPolicy


class RestoreAgent(AgentBase):
    """Agent that lists production backups and restores the one selected."""

    def __init__(self, config_path: str, verbose: Optional[bool] = None, assume_yes: bool = False,
                 handlers: Optional[Dict[str, Any]] = None,
                 prompt: Callable[[str], str] = input):
        """
        Initialize the restore agent.

        Args:
            config_path: Path to the configuration file
            verbose: Overrides options.verbose when set
            assume_yes: Skip the final confirmation
            handlers: Prebuilt 'prod_wp_cli' and 'rsync' collaborators
            prompt: Reads the backup selection
        """
        super().__init__(config_path, verbose=verbose, assume_yes=assume_yes)
        handlers = handlers or {}
        self.prompt = prompt
        self.prod_wp_cli = handlers.get('prod_wp_cli') or WPCLIHandler(
            self.config.prod_path, self.config.wp_cli, self.config.allow_root, logger=self.logger
        )
        self.rsync = handlers.get('rsync') or RsyncHandler(logger=self.logger)
        cache_cleaner = CacheCleaner(
            self.config.prod_path,
            self.prod_wp_cli,
            retry=RetryPolicy(self.config.retry_attempts, self.config.retry_delay, logger=self.logger),
            logger=self.logger,
        )
        self.backups = BackupManager(self.config, self.prod_wp_cli, self.rsync, cache_cleaner, self.logger)

    def list_backups(self) -> List[BackupArchive]:
        """Print available backups newest first and return them."""
        archives = self.backups.list_archives()
        if not archives:
            self.logger.warning(f"No backups found in {self.config.backup_dir}")
            return []

        print("\nAvailable backups:")
        print("==================")
        for number, archive in enumerate(archives, 1):
            created = archive.created_at
            date = created.strftime('%Y-%m-%d %H:%M:%S') if created else 'unknown date'
            print(f"{number:3d}. {os.path.basename(archive.file_path)}  ({date}, {archive.metadata.get('size', '?')})")
        print("")
        return archives

    def _select(self, archives: List[BackupArchive]) -> Optional[BackupArchive]:
        """
        Ask for a backup number.

        Returns:
            The selected archive, or None if the operator quit

        Raises:
            ValidationError: If the answer is not a number in range
        """
        try:
            answer = self.prompt(f"Enter the backup number to restore (1-{len(archives)}) or 'q' to quit: ")
        except (EOFError, KeyboardInterrupt):
            print("\n")
            return None

        answer = answer.strip()
        if answer.lower() == 'q':
            return None
        if not answer.isdigit():
            raise ValidationError("Please enter a valid backup number")
        if not 1 <= int(answer) <= len(archives):
            raise ValidationError(
                f"Backup number out of range. Please select a number between 1 and {len(archives)}"
            )
        return archives[int(answer) - 1]

    def _confirm(self, summary: str) -> bool:
        return self._ask_confirmation("RESTORE PRODUCTION FROM BACKUP", summary)

    def _handle_interrupt(self, signum, frame) -> None:
        self.logger.error(f"Restore interrupted by signal {signum}. Check for partial restoration.")
        raise SystemExit(1)

    def run(self) -> int:
        """
        List, select, confirm and restore.

        Returns:
            0 on success or cancellation, 1 on failure
        """
        self._log_section("WORDPRESS BACKUP RESTORE")
        archives = self.list_backups()
        if not archives:
            return 1

        try:
            archive = self._select(archives)
        except ValidationError as e:
            self.logger.error(f"Error: {e}")
            return 1
        if archive is None:
            self.logger.warning("Restore cancelled by user")
            return 0

        previous = {sig: signal.signal(sig, self._handle_interrupt) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            restored = self.backups.restore(archive, self._confirm)
        except AgentError as e:
            self.logger.error(f"Restore failed: {e}")
            return 1
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        if restored:
            self._log_section("RESTORE COMPLETED")
            self.logger.warning(f"Production restored from: {archive.file_path}")
        else:
            self.logger.warning("Restore cancelled by user")
        return 0
