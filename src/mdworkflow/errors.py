"""Errors raised while resolving configuration, workflow and template resources."""

from __future__ import annotations

from typing import Iterable


class ResourceError(Exception):
    """Base exception for resource environment operations.

    Attributes:
        code: Machine-readable error identifier.
    """

    code = "resource_error"


class ResourceNotFoundError(ResourceError):
    """Raised when an identified resource is absent from an environment.

    Attributes:
        kind: Resource kind such as ``Workflow`` or ``Template``.
        identifier: Identifier that failed to resolve.
        available: Valid alternatives, when known.
    """

    code = "resource_not_found"

    def __init__(self, kind: str, identifier: str, available: Iterable[str] | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.available = list(available) if available is not None else None
        message = f"{kind} not found: {identifier}"
        if self.available is not None:
            message += f". Available: {', '.join(self.available) or '(none)'}"
        super().__init__(message)


class ValidationError(ResourceError):
    """Raised when a resource exists but fails parsing or schema validation."""

    code = "validation_error"


class SecurityError(ResourceError):
    """Raised when an untrusted file violates a security rule.

    Attributes:
        rule: Identifier of the violated rule.
    """

    code = "security_error"

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule


__all__ = ["ResourceError", "ResourceNotFoundError", "ValidationError", "SecurityError"]
