"""Production backup archives: create, prune, list, inspect and restore."""
import glob
import logging
import os
import shutil
import tarfile
from datetime import datetime
from typing import Callable, List, Optional

from core.exceptions import (
    AgentError,
    BackupFailed,
    DatabaseError,
    FileOperationError,
    PathTraversalError,
    RestoreFailed,
)
from core.models import (
    ARCHIVE_PREFIX,
    ARCHIVE_SUFFIX,
    SECRETS_FILE,
    TIMESTAMP_FORMAT,
    BackupArchive,
    DeploymentConfig,
)
from managers.file_sync import normalize_permissions
from utils.path_utils import safe_extract_tar


DATABASE_DUMP = 'database.sql'
FILES_DIR = 'files'
INFO_FILE = 'backup_info.txt'


def format_size(num_bytes: int) -> str:
    """Human readable size, e.g. 1.5M."""
    size = float(num_bytes)
    for unit in ('B', 'K', 'M', 'G'):
        if size < 1024 or unit == 'G':
            return f"{size:.0f}{unit}" if unit == 'B' else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


class BackupManager:
    """Creates and restores compressed production backups in backup_dir."""

    def __init__(self, config: DeploymentConfig, wp_cli, rsync=None, cache_cleaner=None,
                 logger=None, clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            config: Deployment configuration
            wp_cli: WPCLIHandler for the production site
            rsync: RsyncHandler (needed for restore)
            cache_cleaner: CacheCleaner for production (used by restore)
            logger: Optional logger
            clock: Source of the archive timestamp
        """
        self.config = config
        self.wp_cli = wp_cli
        self.rsync = rsync
        self.cache_cleaner = cache_cleaner
        self.clock = clock

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def _archive_path(self, archive_id: str) -> str:
        return os.path.join(self.config.backup_dir, f"{ARCHIVE_PREFIX}{archive_id}{ARCHIVE_SUFFIX}")

    def _write_info(self, path: str, created_at: datetime) -> dict:
        metadata = {
            'created_at': created_at.strftime('%Y-%m-%d %H:%M:%S'),
            'prod_path': self.config.prod_path,
            'stage_path': self.config.stage_path,
            'prod_url': self.config.prod_url,
            'stage_url': self.config.stage_url,
            'preserved_tables': ' '.join(sorted(self.config.preserved_tables)),
        }
        with open(path, 'w') as f:
            f.write("Backup created: {created_at}\n".format(**metadata))
            f.write("Production path: {prod_path}\n".format(**metadata))
            f.write("Stage path: {stage_path}\n".format(**metadata))
            f.write("Production URL: {prod_url}\n".format(**metadata))
            f.write("Stage URL: {stage_url}\n".format(**metadata))
            f.write("Preserved tables: {preserved_tables}\n".format(**metadata))
        return metadata

    def create(self) -> BackupArchive:
        """
        Back up production files and database into one archive.

        Returns:
            The verified BackupArchive

        Raises:
            BackupFailed: If any part of the backup cannot be produced or verified
        """
        created_at = self.clock()
        archive_id = created_at.strftime(TIMESTAMP_FORMAT)
        archive_path = self._archive_path(archive_id)
        temp_dir = os.path.join(self.config.backup_dir, f"temp_{archive_id}")
        self.logger.info(f"Creating backup of production site: {archive_path}")

        try:
            os.makedirs(self.config.backup_dir, exist_ok=True)
            if os.path.exists(archive_path):
                raise BackupFailed(f"Backup archive already exists: {archive_path}")

            self.logger.info("Backing up production files...")
            shutil.copytree(
                self.config.prod_path,
                os.path.join(temp_dir, FILES_DIR),
                symlinks=True,
                ignore=self._ignore_secrets,
            )

            self.logger.info("Backing up production database...")
            self.wp_cli.export_database(os.path.join(temp_dir, DATABASE_DUMP))

            metadata = self._write_info(os.path.join(temp_dir, INFO_FILE), created_at)

            self.logger.info("Compressing backup...")
            with tarfile.open(archive_path, 'w:gz') as tar:
                tar.add(os.path.join(temp_dir, FILES_DIR), arcname=FILES_DIR)
                tar.add(os.path.join(temp_dir, DATABASE_DUMP), arcname=DATABASE_DUMP)
                tar.add(os.path.join(temp_dir, INFO_FILE), arcname=INFO_FILE)
        except BackupFailed:
            raise
        except (AgentError, OSError, shutil.Error, tarfile.TarError) as e:
            self._discard(archive_path)
            raise BackupFailed(f"Backup creation failed: {e}")
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        archive = self.inspect(archive_path)
        if not (archive.contained_files and archive.contained_database_dump):
            self._discard(archive_path)
            raise BackupFailed(f"Backup verification failed: {archive_path} is missing files or database dump")

        metadata['size'] = archive.metadata.get('size', '')
        self.logger.info(f"✓ Backup created: {archive_path} ({metadata['size']})")
        return BackupArchive(archive_id, archive_path, True, True, metadata)

    def _ignore_secrets(self, directory: str, names: List[str]) -> List[str]:
        if os.path.samefile(directory, self.config.prod_path) and SECRETS_FILE in names:
            return [SECRETS_FILE]
        return []

    def _discard(self, path: str) -> None:
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                self.logger.warning(f"Could not remove incomplete archive {path}: {e}")

    def inspect(self, archive_path: str) -> BackupArchive:
        """
        Open an archive and report which parts it contains.

        Raises:
            BackupFailed: If the archive cannot be read
        """
        try:
            with tarfile.open(archive_path, 'r:gz') as tar:
                names = tar.getnames()
                metadata = {}
                if INFO_FILE in names:
                    info = tar.extractfile(INFO_FILE)
                    if info is not None:
                        metadata['info'] = info.read().decode('utf-8', errors='replace')
        except (OSError, tarfile.TarError) as e:
            raise BackupFailed(f"Backup archive {archive_path} is not readable: {e}")

        metadata['size'] = format_size(os.path.getsize(archive_path))
        return BackupArchive(
            id=self._archive_id(archive_path),
            file_path=archive_path,
            contained_files=any(name == FILES_DIR or name.startswith(FILES_DIR + '/') for name in names),
            contained_database_dump=DATABASE_DUMP in names,
            metadata=metadata,
        )

    @staticmethod
    def _archive_id(archive_path: str) -> str:
        name = os.path.basename(archive_path)
        return name[len(ARCHIVE_PREFIX):-len(ARCHIVE_SUFFIX)]

    def list_archives(self) -> List[BackupArchive]:
        """
        List backup archives, newest first.

        Ordered by the timestamp in the name, with modification time as the
        tie-break and as the fallback for names that are not timestamps.
        """
        pattern = os.path.join(self.config.backup_dir, f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}")
        archives = []
        for path in glob.glob(pattern):
            try:
                stat_result = os.stat(path)
            except OSError:
                continue
            archive = BackupArchive(
                id=self._archive_id(path),
                file_path=path,
                metadata={
                    'size': format_size(stat_result.st_size),
                    'mtime': str(stat_result.st_mtime),
                },
            )
            archives.append(archive)

        def sort_key(archive: BackupArchive):
            mtime = float(archive.metadata['mtime'])
            created = archive.created_at
            created_ts = created.timestamp() if created else mtime
            return created_ts, mtime

        return sorted(archives, key=sort_key, reverse=True)

    def prune(self) -> List[str]:
        """
        Delete archives beyond max_backups. Failures are logged, never raised.

        Returns:
            Paths that were removed
        """
        archives = self.list_archives()
        removed = []
        for archive in archives[self.config.max_backups:]:
            try:
                os.remove(archive.file_path)
                removed.append(archive.file_path)
                self.logger.info(f"Removed old backup: {os.path.basename(archive.file_path)}")
            except OSError as e:
                self.logger.warning(f"Could not remove old backup {archive.file_path}: {e}")
        if removed:
            self.logger.info(f"Cleaned up {len(removed)} old backup(s), keeping {self.config.max_backups}")
        return removed

    def restore(self, archive: BackupArchive, confirm: Callable[[str], bool]) -> bool:
        """
        Restore production from an archive.

        Args:
            archive: Archive to restore
            confirm: Receives the backup information text; returning False cancels

        Returns:
            True if restored, False if the operator declined

        Raises:
            RestoreFailed: If extraction, file mirroring or database replacement fails
        """
        stamp = self.clock().strftime(TIMESTAMP_FORMAT)
        temp_dir = os.path.join(self.config.backup_dir, f"restore_temp_{stamp}")
        saved_secrets = os.path.join(self.config.backup_dir, f"{SECRETS_FILE}.pre-restore")
        prod_secrets = os.path.join(self.config.prod_path, SECRETS_FILE)

        self.logger.info(f"Starting restore from: {archive.file_path}")
        try:
            os.makedirs(temp_dir, exist_ok=True)
            self.logger.info("Extracting backup...")
            try:
                safe_extract_tar(archive.file_path, temp_dir)
            except (PathTraversalError, OSError, tarfile.TarError) as e:
                raise RestoreFailed(f"Could not extract {archive.file_path}: {e}")

            info_path = os.path.join(temp_dir, INFO_FILE)
            info = ''
            if os.path.isfile(info_path):
                with open(info_path, 'r', errors='replace') as f:
                    info = f.read()

            summary = (
                f"Backup: {os.path.basename(archive.file_path)}\n"
                f"{info}"
                f"This will REPLACE the current production site at {self.config.prod_path}"
            )
            if not confirm(summary):
                self.logger.info("Restore cancelled by user")
                return False

            files_dir = os.path.join(temp_dir, FILES_DIR)
            if os.path.isdir(files_dir):
                if os.path.isfile(prod_secrets):
                    shutil.copy2(prod_secrets, saved_secrets)
                    self.logger.info(f"✓ Current {SECRETS_FILE} backed up")

                self.logger.info("Restoring files...")
                try:
                    self.rsync.mirror(files_dir, self.config.prod_path, excludes=[f'/{SECRETS_FILE}'])
                except FileOperationError as e:
                    raise RestoreFailed(f"File restore failed: {e}")
                self.logger.info("✓ File restore completed")

                if os.path.isfile(saved_secrets):
                    shutil.copy2(saved_secrets, prod_secrets)
                    self.logger.info(f"✓ {SECRETS_FILE} restored to current version")

            dump = os.path.join(temp_dir, DATABASE_DUMP)
            if os.path.isfile(dump):
                self.logger.info("Restoring database...")
                try:
                    self.wp_cli.reset_database()
                    self.wp_cli.import_database(dump)
                except DatabaseError as e:
                    raise RestoreFailed(f"Database restore failed: {e}")
                self.logger.info("✓ Database restored")

            self.logger.info("Setting file permissions...")
            normalize_permissions(self.config.prod_path, self.config.permission_workers, self.logger)

            if self.cache_cleaner is not None:
                self.cache_cleaner.clear_cache_files()
                self.cache_cleaner.flush_object_cache()

            self.logger.info("Restore completed")
            return True
        except OSError as e:
            raise RestoreFailed(f"Restore failed: {e}")
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
