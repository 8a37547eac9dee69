from __future__ import annotations

from enum import Enum
from typing import List, Optional


class HarnessError(Exception):
    """Base class for harness-level errors (as opposed to assertion failures)."""


class ConfigError(HarnessError):
    pass


class PhaseError(HarnessError):
    pass


class UnknownSchema(HarnessError, KeyError):
    def __init__(self, schema_id: str, known: List[str]):
        super().__init__(f"Unknown schema '{schema_id}'. Known schemas: {', '.join(sorted(known))}")
        self.schema_id = schema_id

    def __str__(self) -> str:
        return self.args[0]


class ServiceUnreachable(HarnessError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url} is unreachable ({reason})")
        self.url = url
        self.reason = reason


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    MALFORMED_RESPONSE = "malformed_response"


class AuthError(HarnessError):
    def __init__(self, kind: AuthErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class SchemaViolation(AssertionError):
    """Raised when a body does not conform to a registered JSON Schema."""

    def __init__(self, schema_id: str, problems: List[str], body_excerpt: str):
        listing = "\n".join(f"  - {p}" for p in problems)
        super().__init__(
            f"Body does not match schema '{schema_id}' ({len(problems)} problem(s)):\n"
            f"{listing}\nBody received: {body_excerpt}"
        )
        self.schema_id = schema_id
        self.problems = problems
