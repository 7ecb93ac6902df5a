"""Handlers for the external collaborators of a promotion run."""
from .database_handler import DatabaseHandler
from .rsync_handler import RsyncHandler
from .wp_cli_handler import WPCLIHandler

__all__ = ['DatabaseHandler', 'RsyncHandler', 'WPCLIHandler']
