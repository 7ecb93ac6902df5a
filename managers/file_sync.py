"""Mirror staging files onto production and normalize permissions."""
import logging
import os
import shutil
import stat
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Tuple

from core.exceptions import FileOperationError
from core.models import SECRETS_FILE, DeploymentConfig
from managers.cache_cleaner import CACHE_DIRECTORIES


DIR_MODE = 0o755
FILE_MODE = 0o644
SECRETS_MODE = 0o600
UPLOADS_DIR_MODE = 0o775
UPLOADS_DIR = os.path.join('wp-content', 'uploads')

SYNC_EXCLUDES = [
    f'/{SECRETS_FILE}',
    '.git/',
    '.svn/',
    '.hg/',
    '.DS_Store',
    'Thumbs.db',
    '*.cache',
] + [f'/{directory}/' for directory in CACHE_DIRECTORIES]

PERMISSION_CHUNK_SIZE = 500


@dataclass
class PermissionReport:
    changed: int = 0
    failed: int = 0


def _target_mode(site_root: str, path: str, is_dir: bool) -> int:
    relative = os.path.relpath(path, site_root)
    if is_dir:
        if relative == UPLOADS_DIR or relative.startswith(UPLOADS_DIR + os.sep):
            return UPLOADS_DIR_MODE
        return DIR_MODE
    if relative == SECRETS_FILE:
        return SECRETS_MODE
    return FILE_MODE


def _chmod_chunk(site_root: str, chunk: List[Tuple[str, bool]]) -> Tuple[int, List[str]]:
    changed = 0
    errors = []
    for path, is_dir in chunk:
        mode = _target_mode(site_root, path, is_dir)
        try:
            if stat.S_IMODE(os.lstat(path).st_mode) != mode:
                os.chmod(path, mode)
                changed += 1
        except OSError as e:
            errors.append(f"{path}: {e}")
    return changed, errors


def normalize_permissions(site_root: str, workers: int = 4, logger=None) -> PermissionReport:
    """
    Apply the production permission scheme to a site tree.

    Directories get 0755 (0775 inside wp-content/uploads), files 0644 and
    wp-config.php 0600. Work is split into disjoint chunks processed by a
    thread pool. Symlinks are left alone.

    Args:
        site_root: WordPress root directory
        workers: Thread pool size
        logger: Optional logger

    Returns:
        PermissionReport with changed and failed counts
    """
    logger = logger or logging.getLogger(__name__)
    entries: List[Tuple[str, bool]] = [(site_root, True)]
    for current, dirs, files in os.walk(site_root):
        for name in dirs:
            path = os.path.join(current, name)
            if not os.path.islink(path):
                entries.append((path, True))
        for name in files:
            path = os.path.join(current, name)
            if not os.path.islink(path):
                entries.append((path, False))

    chunks = [entries[i:i + PERMISSION_CHUNK_SIZE] for i in range(0, len(entries), PERMISSION_CHUNK_SIZE)]
    report = PermissionReport()
    total = len(chunks)
    completed = 0

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = [executor.submit(_chmod_chunk, site_root, chunk) for chunk in chunks]
        for future in as_completed(futures):
            completed += 1
            changed, errors = future.result()
            report.changed += changed
            report.failed += len(errors)
            for error in errors[:5]:
                logger.warning(f"Could not set permissions on {error}")
            if total > 1:
                logger.debug(f"[{completed}/{total}] permission chunks done")

    if report.failed:
        logger.warning(f"Permissions normalized with {report.failed} failure(s) ({report.changed} entries changed)")
    else:
        logger.info(f"✓ Permissions normalized ({report.changed} entries changed)")
    return report


class FileSynchronizer:
    """Mirrors the staging tree onto production, keeping production's wp-config.php."""

    def __init__(self, config: DeploymentConfig, rsync, cache_cleaner=None, logger=None):
        self.config = config
        self.rsync = rsync
        self.cache_cleaner = cache_cleaner

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def secrets_backup_path(self) -> str:
        return os.path.join(self.config.backup_dir, f'{SECRETS_FILE}.backup')

    def sync(self) -> PermissionReport:
        """
        Mirror staging onto production.

        Returns:
            PermissionReport of the permission pass

        Raises:
            FileOperationError: If wp-config.php cannot be saved or rsync fails
        """
        prod_secrets = os.path.join(self.config.prod_path, SECRETS_FILE)
        self.logger.info("Syncing files from stage to production...")

        try:
            os.makedirs(self.config.backup_dir, exist_ok=True)
            shutil.copy2(prod_secrets, self.secrets_backup_path)
        except OSError as e:
            raise FileOperationError(f"Could not back up production {SECRETS_FILE}: {e}")
        self.logger.info(f"✓ Production {SECRETS_FILE} saved to {self.secrets_backup_path}")

        self.rsync.mirror(self.config.stage_path, self.config.prod_path, excludes=SYNC_EXCLUDES)
        self.logger.info("✓ Files mirrored from stage")

        self._restore_secrets(prod_secrets)

        if self.cache_cleaner is not None:
            self.cache_cleaner.clear_cache_files()

        self.logger.info("Setting file permissions...")
        report = normalize_permissions(self.config.prod_path, self.config.permission_workers, self.logger)
        self.logger.info("File sync completed")
        return report

    def _restore_secrets(self, prod_secrets: str) -> None:
        try:
            shutil.copy2(self.secrets_backup_path, prod_secrets)
        except OSError as e:
            raise FileOperationError(
                f"Could not restore production {SECRETS_FILE} from {self.secrets_backup_path}: {e}"
            )
        self.logger.info(f"✓ Production {SECRETS_FILE} restored")
