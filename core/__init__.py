"""Core module for the WordPress promotion agents."""
from .agent_base import AgentBase
from .config_loader import ConfigLoader

__all__ = ['AgentBase', 'ConfigLoader']
