"""Assertions over normalized probe responses.

Each check passes silently or raises AssertionError with a message that
carries the first 200 characters of the raw body.
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Any, Collection, Optional, Union

from acceptance_bench.bench.errors import SchemaViolation
from acceptance_bench.bench.types import STATUS_VALUES, ProbeResponse, ServiceStatus, excerpt
from acceptance_bench.sut.schemas import SchemaRegistry

# Services whose health endpoint is managed by the web framework (component-based payload).
COMPONENT_HEALTH_SERVICES = frozenset({"api-gateway", "gestion-perfil"})


class HealthKind(str, Enum):
    COMPONENT = "component"
    CUSTOM = "custom"


def health_kind_for(service_name: str) -> HealthKind:
    return HealthKind.COMPONENT if service_name in COMPONENT_HEALTH_SERVICES else HealthKind.CUSTOM


def _body_excerpt(body: Any) -> str:
    if isinstance(body, ProbeResponse):
        return body.excerpt()
    if isinstance(body, (bytes, bytearray)):
        return excerpt(body.decode("utf-8", errors="replace"))
    if isinstance(body, (dict, list)):
        return excerpt(json.dumps(body, default=str))
    if body is None:
        return "null"
    return excerpt(str(body))


def assert_status(response: ProbeResponse, expected: Union[int, Collection[int]]) -> None:
    allowed = {expected} if isinstance(expected, int) else set(expected)
    if response.status_code not in allowed:
        want = expected if isinstance(expected, int) else " or ".join(str(c) for c in sorted(allowed))
        raise AssertionError(
            f"Expected HTTP {want} from {response.url or 'the service'} but got {response.status_code}. "
            f"Body received: {response.excerpt()}"
        )


def assert_body_not_blank(response: ProbeResponse, what: str = "The response body") -> None:
    if not response.text.strip():
        raise AssertionError(f"{what} must not be empty (HTTP {response.status_code})")


def assert_json_object(response: ProbeResponse, what: str = "The response") -> dict:
    body = response.json_or_none()
    if not isinstance(body, dict):
        raise AssertionError(f"{what} must be a JSON object. Body received: {response.excerpt()}")
    return body


def assert_health_shape(body: Any, kind: HealthKind, service: str = "service") -> None:
    if not isinstance(body, dict):
        raise AssertionError(f"The health check of {service} must return a JSON object. Body received: {_body_excerpt(body)}")

    if kind is HealthKind.COMPONENT:
        if "status" not in body and "components" not in body:
            raise AssertionError(
                f"The health check of {service} must include 'status' or 'components'. Body received: {_body_excerpt(body)}"
            )
        return

    if "status" not in body:
        raise AssertionError(f"The health check of {service} must include 'status'. Body received: {_body_excerpt(body)}")
    has_version_and_uptime = "version" in body and "uptime" in body
    has_checks = bool(body.get("checks"))
    if not (has_version_and_uptime or has_checks):
        raise AssertionError(
            f"The health check of {service} must include ('version' and 'uptime') or non-empty 'checks'. "
            f"Body received: {_body_excerpt(body)}"
        )


def assert_service_status_enum(value: Any, service: Optional[str] = None) -> ServiceStatus:
    if not isinstance(value, str) or value not in STATUS_VALUES:
        who = f"of service {service} " if service else ""
        raise AssertionError(f"The status {who}must be UP, DOWN or UNKNOWN (got: {value!r})")
    return ServiceStatus(value)


def assert_global_health(body: Any) -> dict:
    """The aggregator answers with {service name: {status, ...}}; an empty mapping is valid."""
    if not isinstance(body, dict):
        raise AssertionError(f"The monitoring response must be a JSON object. Body received: {_body_excerpt(body)}")
    for name, entry in body.items():
        if not isinstance(entry, dict):
            raise AssertionError(f"Service {name} must be a JSON object with status information")
        if "status" not in entry or entry["status"] is None:
            raise AssertionError(f"Service {name} must have a 'status' field")
        assert_service_status_enum(entry["status"], service=name)
    return body


def assert_some_service_up(body: dict) -> None:
    body = assert_global_health(body)
    if not body:
        return
    if not any(entry["status"] == ServiceStatus.UP.value for entry in body.values()):
        raise AssertionError("At least one service must be UP for the system to be considered operational")


class AssertEngine:
    def __init__(self, registry: Optional[SchemaRegistry] = None) -> None:
        self.registry = registry or SchemaRegistry()

    def assert_schema(self, body: Any, schema_id: str) -> None:
        raw = body
        if isinstance(body, ProbeResponse):
            try:
                body = body.json()
            except ValueError:
                raise SchemaViolation(schema_id, ["<root>: body is not valid JSON"], raw.excerpt()) from None
        problems = self.registry.problems(body, schema_id)
        if problems:
            raise SchemaViolation(schema_id, problems, _body_excerpt(raw))
