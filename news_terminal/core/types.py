"""
Core Type Definitions and Exceptions

Error taxonomy shared by every layer of the news terminal. HTTP handlers map
these onto status codes; the ingestion pipeline records any failure against
the source that raised it.
"""
from __future__ import annotations

from typing import Any, Optional


class NewsTerminalError(Exception):
    """Base exception for all news terminal errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(NewsTerminalError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, variable: Optional[str] = None) -> None:
        ctx = {"variable": variable} if variable else {}
        super().__init__(message, ctx)
        self.variable = variable


class ValidationError(NewsTerminalError):
    """Raised when data validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = repr(value)[:100]  # Truncate long values
        super().__init__(message, ctx)
        self.field = field
        self.value = value


class AuthorizationError(NewsTerminalError):
    """Raised when a bearer secret or user token is missing or invalid."""

    def __init__(
        self,
        message: str,
        scheme: str = "bearer",
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["scheme"] = scheme
        super().__init__(message, ctx)
        self.scheme = scheme


class FetchError(NewsTerminalError):
    """Raised when a feed source cannot be fetched or parsed."""

    def __init__(
        self,
        message: str,
        source: str,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["source"] = source
        if status is not None:
            ctx["status"] = status
        super().__init__(message, ctx)
        self.source = source
        self.status = status


class NotFoundError(NewsTerminalError):
    """Raised when a referenced pane or item does not exist."""

    def __init__(self, message: str, kind: str, key: str) -> None:
        super().__init__(message, {"kind": kind, "key": key})
        self.kind = kind
        self.key = key


class PersistenceError(NewsTerminalError):
    """Raised when a store read or write fails."""

    def __init__(
        self,
        message: str,
        table: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["table"] = table
        super().__init__(message, ctx)
        self.table = table
