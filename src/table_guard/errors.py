"""Exception types raised by table-guard.

``ConfigurationError`` is the only error meant to abort application boot.
``ExecutionError`` wraps backend failures raised while applying DDL.
"""

import traceback


class TableGuardError(Exception):
    """Base class for all table-guard errors."""

    pass


class ConfigurationError(TableGuardError):
    """Raised for invalid setup or when the guard policy demands a hard stop.

    Covers unknown features, an empty feature list, invalid mode values,
    ``raise``-mode drift and failing callback outcomes.
    """

    pass


class ExecutionError(TableGuardError):
    """Raised when the database rejects a generated DDL statement."""

    @classmethod
    def from_exception(cls, context: str, exc: BaseException) -> "ExecutionError":
        """Build an ``ExecutionError`` describing *exc*.

        The message carries the original exception class, its message and
        the first five traceback lines.

        Example:
            >>> try:
            ...     raise ValueError("boom")
            ... except ValueError as e:
            ...     err = ExecutionError.from_exception("Failed to execute table creation", e)
            >>> str(err).splitlines()[0]
            'Failed to execute table creation: ValueError - boom'
        """
        frames = traceback.format_tb(exc.__traceback__)[:5] if exc.__traceback__ else []
        lines = [line.strip() for frame in frames for line in frame.splitlines()][:5]
        message = f"{context}: {type(exc).__name__} - {exc}"
        if lines:
            message += "\n  " + "\n  ".join(lines)
        return cls(message)
