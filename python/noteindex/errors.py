"""
Error Handling - Centralized error policies and custom exceptions.

Per-note failures inside an indexing run are logged and skipped through
handle_error(); configuration and invariant errors are raised to the
immediate caller.
"""

import logging
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()           # Leave this note unindexed, continue the run
    ABORT = auto()          # Stop the entire run


class IndexingError(Exception):
    """Base exception for indexing errors."""
    pass


class EmptyContentError(IndexingError):
    """A note had no text to embed. Rejected before any remote call."""
    def __init__(self, identity: str = ""):
        self.identity = identity
        super().__init__(f"No text provided for embedding: {identity or '<unknown>'}")


class EmbeddingError(IndexingError):
    """The embedding backend failed for one input."""
    pass


class ConfigurationError(IndexingError):
    """The indexer is not configured well enough to run."""
    pass


class EmptyIndexError(ConfigurationError):
    """A query was issued for a model with no stored vectors."""
    def __init__(self, model_name: str):
        self.model_name = model_name
        super().__init__(f"No vectors stored for model: {model_name}")


class DimensionMismatchError(IndexingError):
    """A vector does not match the dimensionality of its model's vectors."""
    def __init__(self, model_name: str, expected: int, actual: int):
        self.model_name = model_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector for model {model_name} has {actual} dimensions, expected {expected}"
        )


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{identity}: {error}"


# Error type to policy mapping (first match wins, so subclasses go first)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    EmptyContentError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.INFO,
        message_template="Skipping empty note: {identity}"
    ),
    EmbeddingError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Embedding failed for {identity}: {error}"
    ),
    TimeoutError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Embedding timed out for {identity}"
    ),
    DimensionMismatchError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.ERROR,
        message_template="Rejected vector for {identity}: {error}"
    ),
    ConfigurationError: ErrorPolicy(
        action=ErrorAction.ABORT,
        log_level=logging.ERROR,
        message_template="Configuration error: {error}"
    ),
    UnicodeDecodeError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Cannot decode note (binary?): {identity}"
    ),
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Note not found (possibly deleted): {identity}"
    ),
    PermissionError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Permission denied: {identity}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="OS error reading note: {identity} - {error}"
    ),
}


def handle_error(
    error: BaseException,
    identity: Optional[str] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        identity: Note being processed (if applicable)
        context: Additional context for logging

    Returns:
        The action to take (SKIP or ABORT)
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Default policy for unknown errors (provider-specific failures land here)
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.SKIP,
            log_level=logging.ERROR,
            message_template="Unexpected error: {identity} - {error}"
        )

    message = policy.message_template.format(
        identity=identity or "<unknown>",
        error=str(error) or type(error).__name__,
    )
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action
