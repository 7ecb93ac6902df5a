"""Handler for mirroring directory trees with rsync."""
import logging
import shutil
from typing import Iterable, List, Optional

from core.exceptions import FileOperationError
from utils.shell_exec import execute_command


class RsyncHandler:
    """Mirror one local tree onto another with rsync."""

    def __init__(self, rsync: str = 'rsync', timeout: Optional[int] = None, logger=None):
        self.rsync = rsync
        self.timeout = timeout

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def is_available(self) -> bool:
        return shutil.which(self.rsync) is not None

    def build_command(self, source: str, destination: str, excludes: Iterable[str] = (),
                      delete: bool = True, checksum: bool = True) -> List[str]:
        """
        Build the rsync argument list.

        Args:
            source: Source directory (its contents are copied)
            destination: Destination directory
            excludes: rsync --exclude patterns
            delete: Remove destination files missing from source
            checksum: Compare by checksum instead of size and mtime

        Returns:
            Command list
        """
        command = [self.rsync, '-a']
        if delete:
            command.append('--delete')
        if checksum:
            command.append('--checksum')
        for pattern in excludes:
            command.append(f'--exclude={pattern}')
        command.append(source.rstrip('/') + '/')
        command.append(destination.rstrip('/') + '/')
        return command

    def mirror(self, source: str, destination: str, excludes: Iterable[str] = (),
               delete: bool = True, checksum: bool = True) -> None:
        """
        Mirror source onto destination.

        Raises:
            FileOperationError: If rsync fails
        """
        command = self.build_command(source, destination, excludes, delete, checksum)
        self.logger.info(f"Syncing {source} -> {destination}")
        try:
            execute_command(command, timeout=self.timeout)
        except RuntimeError as e:
            raise FileOperationError(f"rsync failed: {e}")
