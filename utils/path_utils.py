"""Path handling utilities for archive extraction and site trees."""
import os
import sys
import tarfile
from pathlib import Path
from typing import List

from core.exceptions import PathTraversalError


def validate_relative_path(relative_path: str) -> str:
    """
    Validate and normalize relative path to prevent traversal attacks.

    Args:
        relative_path: The relative path to validate

    Returns:
        Normalized path with forward slashes

    Raises:
        PathTraversalError: If path contains traversal attempts
    """
    if os.path.isabs(relative_path):
        raise PathTraversalError(f"Invalid path: {relative_path} - absolute paths not allowed")

    normalized = os.path.normpath(relative_path)

    if normalized.startswith('..'):
        raise PathTraversalError(f"Invalid path: {relative_path} - path traversal not allowed")

    # Ensure no path component is '..'
    if '..' in Path(relative_path).parts:
        raise PathTraversalError(f"Invalid path contains parent reference: {relative_path}")

    return normalized.replace('\\', '/')


def safe_extract_tar(archive_path: str, destination: str) -> List[str]:
    """
    Extract a tar archive, refusing members that would land outside destination.

    Args:
        archive_path: Path to the .tar.gz archive
        destination: Directory to extract into

    Returns:
        Names of the extracted members

    Raises:
        PathTraversalError: If any member escapes the destination
        tarfile.TarError: If the archive is unreadable
    """
    target = Path(destination).resolve()
    with tarfile.open(archive_path, 'r:*') as tar:
        safe_members = []
        for member in tar.getmembers():
            validate_relative_path(member.name)
            member_path = (target / member.name).resolve()
            if member_path != target and not str(member_path).startswith(str(target) + os.sep):
                raise PathTraversalError(f"Archive member '{member.name}' would extract outside {destination}")
            if member.issym() or member.islnk():
                # Hard link names are relative to the archive root
                base = member_path.parent if member.issym() else target
                link_path = (base / member.linkname).resolve()
                if not str(link_path).startswith(str(target) + os.sep):
                    raise PathTraversalError(f"Archive link '{member.name}' points outside {destination}")
            safe_members.append(member)

        if sys.version_info >= (3, 12):
            tar.extractall(destination, members=safe_members, filter='data')
        else:
            tar.extractall(destination, members=safe_members)

    return [member.name for member in safe_members]
