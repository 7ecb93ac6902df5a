"""Custom exception hierarchy for the promotion agents."""


class AgentError(Exception):
    """Base exception for all agent-related errors."""
    pass


class ConfigurationError(AgentError):
    """Raised when configuration is invalid."""
    pass


class FileOperationError(AgentError):
    """Raised when file operations fail."""
    pass


class DatabaseError(AgentError):
    """Raised when database operations fail."""
    pass


class ValidationError(AgentError):
    """Raised when validation fails."""
    pass


class PathTraversalError(ValidationError):
    """Raised when path traversal is detected."""
    pass


class PreconditionError(AgentError):
    """Raised when a requirement is missing before anything was modified."""
    pass


class StageFailure(AgentError):
    """Raised when a pipeline stage fails after production may have been modified."""
    pass


class BackupFailed(StageFailure):
    """Raised when a production backup cannot be created or verified."""
    pass


class RestoreFailed(StageFailure):
    """Raised when restoring a backup archive fails."""
    pass
