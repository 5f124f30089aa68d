"""
Exception classes for postcorrect.

All postcorrect exceptions inherit from PostCorrectError,
making it easy to catch all library errors.

Example:
    >>> try:
    ...     asyncio.run(pipe(tokenize(path), normalize(), train("ms", ...)))
    ... except postcorrect.StageError as e:
    ...     print(f"stage {e.stage} failed: {e.cause}")
    ... except postcorrect.PostCorrectError as e:
    ...     print(f"postcorrect error: {e}")
"""

from __future__ import annotations


class PostCorrectError(Exception):
    """
    Base exception for all postcorrect errors.

    Catch this to handle any postcorrect-specific error.
    """

    pass


class ConfigurationError(PostCorrectError, ValueError):
    """
    Raised for invalid configuration or unusable training input.

    Example:
        >>> TrainingSettings(learning_rate=0)
        ConfigurationError: learning_rate must be > 0, got 0
    """

    pass


class PipelineError(PostCorrectError):
    """
    Raised when a pipeline is put together or driven incorrectly.

    Covers mismatched payload kinds between adjacent stages, reading from
    a source stage, writing from a sink stage and lines without an
    end-of-line marker.
    """

    pass


class PayloadError(PostCorrectError, TypeError):
    """Raised when a token carries a different payload variant than expected."""

    pass


class ProfileError(PostCorrectError):
    """Raised when a profile cannot be read or produced."""

    pass


class StageError(PostCorrectError):
    """
    Raised when a pipeline stage fails.

    Wraps the original error with the name of the stage it escaped from.
    The original error stays available as ``cause`` and ``__cause__``.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
