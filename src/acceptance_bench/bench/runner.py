from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

from acceptance_bench.bench import assert_engine as checks
from acceptance_bench.bench.assert_engine import AssertEngine, HealthKind, health_kind_for
from acceptance_bench.bench.data_gen import DataGenerator
from acceptance_bench.bench.errors import AuthError, ServiceUnreachable
from acceptance_bench.bench.scenario import ScenarioContext
from acceptance_bench.bench.session import SessionManager, extract_token
from acceptance_bench.bench.types import (
    LogSettleStrategy,
    Outcome,
    OutcomeKind,
    ProbeResponse,
    ProbeResult,
    Role,
    ServiceHealthRecord,
    SessionToken,
    TestUser,
    Unreachable,
)

logger = logging.getLogger(__name__)

MISSING_USERNAME = "usuario_inexistente_12345"
UNAVAILABLE_HINT = "This is expected when the service is not running in this environment."


def step_outcome(fn: Callable[..., Any]) -> Callable[..., Outcome]:
    """
    Step boundary:
      - unreachable dependency -> SKIP (broken infrastructure is not a regression)
      - assertion / auth failure -> FAIL
      - anything else (harness bugs) propagates
    """

    @functools.wraps(fn)
    def wrapper(self: "ScenarioRunner", ctx: ScenarioContext, *args, **kwargs) -> Outcome:
        try:
            result = fn(self, ctx, *args, **kwargs)
        except ServiceUnreachable as exc:
            reason = f"{exc}. {UNAVAILABLE_HINT}"
            logger.warning("skipping scenario '%s': %s", ctx.name, reason)
            return Outcome.skip(reason)
        except (AssertionError, AuthError) as exc:
            return Outcome.fail(str(exc))
        return result if isinstance(result, Outcome) else Outcome.ok()

    return wrapper


def reach(result: ProbeResult) -> ProbeResponse:
    if isinstance(result, Unreachable):
        raise ServiceUnreachable(result.url, result.reason)
    return result


class ScenarioRunner:
    """
    Maps Gherkin steps onto the probe, session and assertion layers.
    Holds no scenario state of its own: every operation reads and writes the
    ScenarioContext it is given and returns an Outcome.
    """

    def __init__(
        self,
        client,
        data_gen: Optional[DataGenerator] = None,
        asserts: Optional[AssertEngine] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.sut = client.sut
        self.data_gen = data_gen or DataGenerator()
        self.asserts = asserts or AssertEngine()
        self.session = SessionManager(client)
        self.sleep = sleep
        self.clock = clock

    def new_context(self, name: str = "") -> ScenarioContext:
        return ScenarioContext(name=name)

    def health_targets(self) -> List[Tuple[str, str, str]]:
        sut = self.sut
        return [
            ("api-gateway", sut.api_gateway_url, "/actuator/health"),
            ("gestion-perfil", sut.profile_url, "/actuator/health"),
            ("jwt-service", sut.jwt_service_url, "/v1/health"),
            ("notifications", sut.notifications_url, "/health"),
            ("orquestador", sut.orchestrator_url, "/health"),
        ]

    # ===== deployment health =====

    @step_outcome
    def system_deployed(self, ctx: ScenarioContext):
        response = reach(self.client.health(self.sut.api_gateway_url, "/actuator/health", endpoint="gateway.health"))
        checks.assert_status(response, {200, 503})

    @step_outcome
    def collect_service_health(self, ctx: ScenarioContext):
        self._collect_health(ctx)

    def _collect_health(self, ctx: ScenarioContext) -> None:
        ctx.health.clear()
        for name, base, path in self.health_targets():
            result = self.client.health(base, path, endpoint=f"{name}.health")
            if isinstance(result, Unreachable):
                logger.info("%s not available, leaving it out of the health map", name)
                continue
            ctx.health[name] = ServiceHealthRecord.from_response(name, result)

    @step_outcome
    def all_services_report(self, ctx: ScenarioContext, expected: str):
        if not ctx.health:
            return Outcome.skip(f"No microservice is available. {UNAVAILABLE_HINT}")
        for name, record in ctx.health.items():
            code = record.response.status_code
            if expected == "UP":
                # framework health endpoints may answer 200 while reporting DOWN in the body
                if health_kind_for(name) is HealthKind.COMPONENT and code == 200 and isinstance(record.raw, dict):
                    declared = record.raw.get("status")
                    if declared is not None and declared != "UP":
                        raise AssertionError(
                            f"Service {name} answers HTTP 200 but reports status '{declared}' instead of 'UP'"
                        )
                if code != 200:
                    raise AssertionError(f"Service {name} must answer 200 (UP) but got {code}")
            elif not 200 <= code < 500:
                raise AssertionError(f"Service {name} must answer with a valid code (got {code})")
            checks.assert_body_not_blank(record.response, what=f"The response body of service {name}")

    @step_outcome
    def health_includes_version_and_uptime(self, ctx: ScenarioContext):
        if not ctx.health:
            return Outcome.skip(f"No microservice is available. {UNAVAILABLE_HINT}")
        for name, record in ctx.health.items():
            if record.response.status_code != 200:
                continue
            if not isinstance(record.raw, dict):
                raise AssertionError(
                    f"Service {name} must return valid JSON. Body received: {record.response.excerpt()}"
                )
            checks.assert_health_shape(record.raw, health_kind_for(name), service=name)

    @step_outcome
    def health_checks_show_correct_info(self, ctx: ScenarioContext):
        if not ctx.health:
            self._collect_health(ctx)
        if not ctx.health:
            raise AssertionError("There must be at least one health check response to validate")
        for name, record in ctx.health.items():
            checks.assert_status(record.response, 200)
            body = checks.assert_json_object(record.response, what=f"The health check of {name}")
            checks.assert_health_shape(body, HealthKind.COMPONENT, service=name)
            if not body:
                raise AssertionError(f"The health check of {name} must contain information")

    # ===== monitoring =====

    @step_outcome
    def monitoring_available(self, ctx: ScenarioContext):
        checks.assert_status(reach(self.client.global_health()), 200)

    @step_outcome
    def query_global_health(self, ctx: ScenarioContext):
        ctx.global_health = reach(self.client.global_health())

    @step_outcome
    def global_health_lists_services(self, ctx: ScenarioContext):
        self._valid_global_health(ctx)

    @step_outcome
    def every_service_has_status(self, ctx: ScenarioContext):
        checks.assert_global_health(self._valid_global_health(ctx))

    @step_outcome
    def service_registered_in_monitor(self, ctx: ScenarioContext):
        ctx.global_health = reach(self.client.global_health())
        checks.assert_status(ctx.global_health, 200)

    @step_outcome
    def service_stops_responding(self, ctx: ScenarioContext):
        # Stopping a service is outside this tool's reach; the monitor is observed as-is.
        logger.info("scenario '%s': not stopping any service, observing the monitor as deployed", ctx.name)

    @step_outcome
    def monitor_detects_failure(self, ctx: ScenarioContext):
        self._valid_global_health(ctx)

    @step_outcome
    def monitor_sends_notification(self, ctx: ScenarioContext):
        self._valid_global_health(ctx)

    @step_outcome
    def monitor_reports_services_up(self, ctx: ScenarioContext):
        if ctx.global_health is None:
            ctx.global_health = reach(self.client.global_health())
        checks.assert_some_service_up(self._valid_global_health(ctx))

    def _valid_global_health(self, ctx: ScenarioContext) -> dict:
        if ctx.global_health is None:
            raise AssertionError("The monitoring system response must not be null")
        checks.assert_status(ctx.global_health, 200)
        checks.assert_body_not_blank(ctx.global_health, what="The monitoring response")
        return checks.assert_json_object(ctx.global_health, what="The monitoring response")

    # ===== centralized logs =====

    @step_outcome
    def service_emits_log(self, ctx: ScenarioContext):
        result = self.client.health(self.sut.notifications_url, "/health", endpoint="notifications.health")
        if isinstance(result, Unreachable):
            logger.info("notifications unreachable; no log line will be produced: %s", result.describe())
        self.settle_logs()

    def settle_logs(self) -> bool:
        """Give the log pipeline time to ingest. Returns True when the backend reported ready."""
        strategy = self.sut.log_settle_strategy
        if strategy is LogSettleStrategy.SLEEP:
            self.sleep(self.sut.log_settle_seconds)
            return True

        deadline = self.clock() + self.sut.log_settle_seconds
        while True:
            result = self.client.log_backend_ready()
            if isinstance(result, ProbeResponse) and result.status_code == 200:
                return True
            if self.clock() >= deadline:
                logger.warning("log backend not ready after %.1fs", self.sut.log_settle_seconds)
                return False
            self.sleep(self.sut.log_poll_interval)

    @step_outcome
    def query_log_backend(self, ctx: ScenarioContext):
        result = self.client.log_backend_ready()
        ctx.log_backend = result if isinstance(result, ProbeResponse) else None

    @step_outcome
    def log_backend_has_entries(self, ctx: ScenarioContext):
        if ctx.log_backend is None:
            return Outcome.skip(f"The log backend at {self.sut.log_backend_url} did not answer. {UNAVAILABLE_HINT}")
        checks.assert_status(ctx.log_backend, 200)

    @step_outcome
    def logs_reach_central_store(self, ctx: ScenarioContext):
        if ctx.log_backend is None:
            ctx.log_backend = reach(self.client.log_backend_ready())
        checks.assert_status(ctx.log_backend, 200)

    # ===== full flow through the gateway =====

    @step_outcome
    def register_user_via_gateway(self, ctx: ScenarioContext):
        user = self.data_gen.new_user()
        ctx.record(reach(self.client.register_via_gateway(user)))
        ctx.last_user = user

    @step_outcome
    def user_performs_operations(self, ctx: ScenarioContext):
        result = self.client.health(self.sut.api_gateway_url, "/actuator/health", endpoint="gateway.health")
        if isinstance(result, ProbeResponse):
            ctx.record(result)

    # ===== user API =====

    @step_outcome
    def user_api_available(self, ctx: ScenarioContext):
        # any HTTP answer counts; only a transport failure skips
        reach(self.client.health(self.sut.jwt_service_url, "/v1/health", endpoint="jwt-service.health"))

    @step_outcome
    def register_user(self, ctx: ScenarioContext):
        self._register(ctx)

    @step_outcome
    def ensure_registered_user(self, ctx: ScenarioContext):
        checks.assert_status(self._register(ctx), {200, 201})

    def _register(self, ctx: ScenarioContext) -> ProbeResponse:
        user = self.data_gen.new_user()
        response = ctx.record(reach(self.client.register(user)))
        ctx.last_user = user
        return response

    @step_outcome
    def login_current_user(self, ctx: ScenarioContext):
        user = self._require_user(ctx)
        response = ctx.record(reach(self.client.login(user.username, user.password)))
        ctx.user_token = None
        if response.status_code == 200:
            token = extract_token(response.json_or_none())
            if token is not None:
                ctx.user_token = SessionToken(subject=user.username, token=token, issued_for=Role.USER)

    @step_outcome
    def assert_token_obtained(self, ctx: ScenarioContext):
        if ctx.user_token is None or not ctx.user_token.token.strip():
            raise AssertionError("Expected a non-blank JWT token from the login response")

    @step_outcome
    def request_recovery_code(self, ctx: ScenarioContext):
        user = self._require_user(ctx)
        ctx.record(reach(self.client.request_recovery_code(user.username)))

    @step_outcome
    def login_admin(self, ctx: ScenarioContext):
        ctx.admin_token = self.session.login_as_admin()
        ctx.bearer = ctx.admin_token.token

    @step_outcome
    def login_non_admin(self, ctx: ScenarioContext):
        ctx.user_token = self.session.login_user(self._require_user(ctx))
        ctx.bearer = ctx.user_token.token

    @step_outcome
    def clear_session(self, ctx: ScenarioContext):
        ctx.admin_token = None
        ctx.user_token = None
        ctx.bearer = ""

    @step_outcome
    def list_users(self, ctx: ScenarioContext, page: int):
        ctx.record(reach(self.client.list_users(ctx.bearer, page)))

    @step_outcome
    def assert_user_list(self, ctx: ScenarioContext):
        body = checks.assert_json_object(ctx.require_response())
        if body.get("respuesta") is None:
            raise AssertionError(f"The body must contain a 'respuesta' list. Body received: {ctx.require_response().excerpt()}")

    @step_outcome
    def delete_current_user(self, ctx: ScenarioContext):
        user = self._require_user(ctx)
        ctx.record(reach(self.client.delete_user(ctx.bearer, user.username)))

    @step_outcome
    def delete_missing_user(self, ctx: ScenarioContext):
        ctx.record(reach(self.client.delete_user(ctx.bearer, MISSING_USERNAME)))

    # ===== generic checks on the last response =====

    @step_outcome
    def assert_last_status(self, ctx: ScenarioContext, expected: int):
        checks.assert_status(ctx.require_response(), expected)

    @step_outcome
    def assert_last_schema(self, ctx: ScenarioContext, schema_id: str):
        self.asserts.assert_schema(ctx.require_response(), schema_id)

    @step_outcome
    def assert_last_body_not_blank(self, ctx: ScenarioContext):
        checks.assert_body_not_blank(ctx.require_response())

    def _require_user(self, ctx: ScenarioContext) -> TestUser:
        if ctx.last_user is None:
            raise AssertionError("No user has been created in this scenario yet")
        return ctx.last_user


def apply_outcome(context, outcome: Outcome) -> None:
    """Translate an Outcome into behave's vocabulary for the running step."""
    if outcome.kind is OutcomeKind.SKIP:
        context.scenario.skip(reason=outcome.reason)
    elif outcome.kind is OutcomeKind.FAIL:
        raise AssertionError(outcome.reason)


def scenario_outcome(scenario) -> Outcome:
    """The reverse direction: read behave's finished scenario back as an Outcome."""
    status = getattr(scenario.status, "name", str(scenario.status))
    if status == "passed":
        return Outcome.ok()
    if status in ("skipped", "untested"):
        return Outcome.skip(getattr(scenario, "skip_reason", None) or status)

    failed = next((s for s in scenario.steps if getattr(s.status, "name", "") in ("failed", "error")), None)
    message = getattr(failed, "error_message", None) if failed else None
    return Outcome.fail(message or status)
