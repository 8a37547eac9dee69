from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

EXCERPT_CHARS = 200


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class ServiceStatus(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    UNKNOWN = "UNKNOWN"


STATUS_VALUES = frozenset(s.value for s in ServiceStatus)


class OutcomeKind(str, Enum):
    OK = "ok"
    SKIP = "skip"
    FAIL = "fail"


class ScenarioPhase(str, Enum):
    NOT_STARTED = "not_started"
    GIVEN = "given"
    WHEN = "when"
    THEN = "then"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ScenarioPhase.COMPLETED, ScenarioPhase.SKIPPED, ScenarioPhase.FAILED)


class AdminBootstrap(str, Enum):
    SEEDED = "seeded"       # admin row loaded by external fixtures
    REGISTER = "register"   # register the admin through the user API on first failed login


class LogSettleStrategy(str, Enum):
    SLEEP = "sleep"
    POLL = "poll"


@dataclass(frozen=True)
class SUTContext:
    api_gateway_url: str
    profile_url: str
    jwt_service_url: str
    notifications_url: str
    orchestrator_url: str
    health_check_url: str
    log_backend_url: str
    user_api_url: str                  # auth base + base path, e.g. http://localhost:8081/v1
    admin_username: str = "admin"
    admin_password: str = "admin123"
    admin_bootstrap: AdminBootstrap = AdminBootstrap.SEEDED
    timeout: float = 10.0
    verify_tls: bool = True
    log_settle_strategy: LogSettleStrategy = LogSettleStrategy.SLEEP
    log_settle_seconds: float = 2.0
    log_poll_interval: float = 0.25
    report_path: Optional[str] = "reports/acceptance-report.json"
    report_console: bool = False
    env: Dict[str, Any] = field(default_factory=dict)   # snapshot of resolved settings and their source


@dataclass(frozen=True)
class TestUser:
    username: str
    email: str
    phone: str
    password: str
    first_name: str = ""
    last_name: str = ""
    role: Role = Role.USER

    __test__ = False  # not a pytest test class

    def registration_payload(self) -> Dict[str, str]:
        return {
            "usuario": self.username,
            "correo": self.email,
            "numeroTelefono": self.phone,
            "clave": self.password,
            "nombres": self.first_name,
            "apellidos": self.last_name,
        }

    def gateway_payload(self) -> Dict[str, str]:
        return {
            "usuario": self.username,
            "correo": self.email,
            "clave": self.password,
            "numeroTelefono": self.phone,
        }


@dataclass(frozen=True)
class SessionToken:
    subject: str          # username the token was issued to
    token: str
    issued_for: Role


@dataclass(frozen=True)
class ProbeResponse:
    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON; raises ValueError when it is not JSON."""
        return json.loads(self.text)

    def json_or_none(self) -> Any:
        try:
            return self.json()
        except ValueError:
            return None

    def excerpt(self, limit: int = EXCERPT_CHARS) -> str:
        return excerpt(self.text, limit)


@dataclass(frozen=True)
class Unreachable:
    """A probe target that could not be contacted at the transport level."""

    url: str
    reason: str

    def describe(self) -> str:
        return f"{self.url} is unreachable ({self.reason})"


ProbeResult = Union[ProbeResponse, Unreachable]


@dataclass(frozen=True)
class ProbeEvent:
    method: str
    endpoint: str           # logical label, e.g. "auth.login"
    status_code: Optional[int]
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 400


@dataclass(frozen=True)
class ServiceHealthRecord:
    service_name: str
    status: ServiceStatus
    raw: Any
    response: ProbeResponse

    @classmethod
    def from_response(cls, service_name: str, response: ProbeResponse) -> "ServiceHealthRecord":
        raw = response.json_or_none()
        declared = raw.get("status") if isinstance(raw, dict) else None
        if declared is not None:
            # a declared status outside UP/DOWN/UNKNOWN is not trusted
            valid = isinstance(declared, str) and declared in STATUS_VALUES
            status = ServiceStatus(declared) if valid else ServiceStatus.UNKNOWN
        elif response.status_code == 200:
            status = ServiceStatus.UP
        elif response.status_code >= 500:
            status = ServiceStatus.DOWN
        else:
            status = ServiceStatus.UNKNOWN
        return cls(service_name=service_name, status=status, raw=raw, response=response)


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    reason: str = ""

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(OutcomeKind.OK)

    @classmethod
    def skip(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.SKIP, reason)

    @classmethod
    def fail(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAIL, reason)

    @property
    def is_ok(self) -> bool:
        return self.kind is OutcomeKind.OK


def excerpt(text: Optional[str], limit: int = EXCERPT_CHARS) -> str:
    if text is None:
        return "null"
    return text[:limit]
