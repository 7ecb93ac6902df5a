"""Base class for all agents."""
import dataclasses
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from core.config_loader import ConfigLoader
from core.models import DeploymentConfig


class CleanOutputFormatter(logging.Formatter):
    """Custom formatter that hides the level name for WARNING messages."""

    def format(self, record):
        # For WARNING level, use a format without levelname
        if record.levelno == logging.WARNING:
            original_format = self._style._fmt
            self._style._fmt = '%(asctime)s - %(name)s - %(message)s'
            result = super().format(record)
            self._style._fmt = original_format
            return result
        else:
            return super().format(record)


class AgentBase(ABC):
    """Abstract base class for the promotion and restore agents."""

    def __init__(self, config_path: str, verbose: Optional[bool] = None, assume_yes: bool = False):
        """
        Initialize the agent with configuration.

        Args:
            config_path: Path to the JSON or shell-style configuration file
            verbose: Overrides options.verbose from the configuration when set
            assume_yes: Answer every confirmation prompt with yes
        """
        self.config_path = config_path
        self.config = self._load_config(verbose)
        self.assume_yes = assume_yes
        self.logger = self._setup_logger()

    def _load_config(self, verbose: Optional[bool]) -> DeploymentConfig:
        """Load and validate the deployment configuration."""
        config = ConfigLoader.load_deployment_config(self.config_path)
        if verbose is not None:
            config = dataclasses.replace(config, verbose=verbose)
        return config

    def _setup_logger(self) -> logging.Logger:
        """Set up console and deployment.log handlers for the agent."""
        logger = logging.getLogger(self.__class__.__name__)
        logger.setLevel(logging.INFO)
        for old in list(logger.handlers):
            old.close()
            logger.removeHandler(old)

        # When verbose=False, only show WARNING and above on the console
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO if self.config.verbose else logging.WARNING)
        formatter = CleanOutputFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # deployment.log is append-only and always records INFO
        try:
            os.makedirs(self.config.backup_dir, exist_ok=True)
            file_handler = logging.FileHandler(self.config.log_path, mode='a')
        except OSError as e:
            logger.warning(f"Cannot open deployment log {self.config.log_path}: {e}")
        else:
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(
                '[%(asctime)s] %(levelname)s: %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            logger.addHandler(file_handler)

        return logger

    def _log_section(self, title: str, level: str = 'warning') -> None:
        """Log a section header with separator lines."""
        log_func = getattr(self.logger, level)
        log_func("=" * 60)
        log_func(title)
        log_func("=" * 60)

    def _ask_confirmation(self, title: str, message: str, expected: str = 'yes') -> bool:
        """
        Prompt the operator and wait for an explicit answer.

        Args:
            title: Banner title
            message: Text shown inside the banner
            expected: Answer that means "proceed" (case-insensitive)

        Returns:
            True if the operator typed the expected answer, False otherwise
        """
        if self.assume_yes:
            self.logger.info(f"{title}: confirmed automatically (--yes)")
            return True

        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)
        print(message)
        print("=" * 60)
        print(f"\nType '{expected}' to continue or anything else to cancel: ", end='', flush=True)

        try:
            response = input().strip()
        except (EOFError, KeyboardInterrupt):
            print("\n")
            return False

        if response.lower() == expected.lower():
            return True
        self.logger.info(f"{title}: cancelled by user")
        return False

    @abstractmethod
    def run(self) -> int:
        """Execute the agent's main functionality and return the exit code."""
        pass
