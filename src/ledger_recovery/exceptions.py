"""Custom exceptions for the ledger recovery engine.

Parsers never let these escape for bad input: malformed, truncated or
unrecognised data always degrades to a warning on the ``ParseResult``.
The exceptions exist so that the per-record fault isolation inside the
engine has something precise to catch, and so that caller misuse (an
unreadable path, invalid settings) is reported clearly.

Example:
    try:
        amount = coerce_amount(raw_value)
    except CoercionError as e:
        logger.debug("record_skipped", reason=e.message, **e.details)
"""

from typing import Any, Optional


class RecoveryError(Exception):
    """Base exception for all ledger recovery errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether processing can continue past this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class CoercionError(RecoveryError):
    """A raw value could not be turned into a date or an amount.

    Raised while converting a single record; the mapping engine catches it
    and drops only that record.

    Attributes:
        role: The mapped role being coerced (``date``, ``amount``...).
        value: The raw value, truncated to keep logs readable.

    Example:
        >>> raise CoercionError("Not a number", role="amount", value="abc")
        Traceback (most recent call last):
        ...
        ledger_recovery.exceptions.CoercionError: Not a number
    """

    def __init__(
        self,
        message: str,
        *,
        role: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.role = role
        self.value = value

        if role:
            self.details["role"] = role
        if value is not None:
            self.details["value"] = repr(value)[:60]


class SourceFileError(RecoveryError):
    """The input file could not be read at all.

    This is a problem with the path the caller supplied, not with the
    file's contents.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.path = path

        if path:
            self.details["path"] = path


class ConfigurationError(RecoveryError):
    """Error raised when configuration is invalid or missing.

    Attributes:
        config_key: The configuration key that is problematic.
        expected: Description of the expected value or format.
        actual: The actual value found (if any).

    Example:
        >>> raise ConfigurationError(
        ...     "Unknown log level",
        ...     config_key="LEDGER_LOG_LEVEL",
        ...     expected="DEBUG, INFO, WARNING, ERROR or CRITICAL",
        ... )
        Traceback (most recent call last):
        ...
        ledger_recovery.exceptions.ConfigurationError: Unknown log level
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


__all__ = [
    "RecoveryError",
    "CoercionError",
    "SourceFileError",
    "ConfigurationError",
]
