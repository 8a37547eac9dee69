import dataclasses
import types

import httpx
import pytest

from acceptance_bench.bench.data_gen import DataGenerator
from acceptance_bench.bench.runner import MISSING_USERNAME, ScenarioRunner, apply_outcome, scenario_outcome
from acceptance_bench.bench.types import LogSettleStrategy, Outcome, OutcomeKind, ServiceStatus
from acceptance_bench.sut.client import ProbeClient

USER_API = "http://localhost:8081/v1"
GATEWAY_HEALTH = "http://localhost:8085/actuator/health"
MONITOR = "http://localhost:8082/health"
LOKI_READY = "http://localhost:3100/ready"

HEALTH_URLS = {
    "api-gateway": GATEWAY_HEALTH,
    "gestion-perfil": "http://localhost:8084/actuator/health",
    "jwt-service": "http://localhost:8081/v1/health",
    "notifications": "http://localhost:8080/health",
    "orquestador": "http://localhost:3001/health",
}

REFUSED = httpx.ConnectError("Connection refused")


def _all_down(mock_api):
    for url in HEALTH_URLS.values():
        mock_api.get(url).mock(side_effect=REFUSED)


def _healthy(mock_api):
    mock_api.get(HEALTH_URLS["api-gateway"]).mock(return_value=httpx.Response(200, json={"status": "UP"}))
    mock_api.get(HEALTH_URLS["gestion-perfil"]).mock(
        return_value=httpx.Response(200, json={"status": "UP", "components": {"db": {"status": "UP"}}})
    )
    mock_api.get(HEALTH_URLS["jwt-service"]).mock(
        return_value=httpx.Response(200, json={"status": "UP", "version": "1.0.0", "uptime": 42})
    )
    mock_api.get(HEALTH_URLS["notifications"]).mock(
        return_value=httpx.Response(200, json={"status": "UP", "checks": [{"name": "smtp", "status": "UP"}]})
    )
    mock_api.get(HEALTH_URLS["orquestador"]).mock(side_effect=REFUSED)


# ===== deployment health =====

def test_unreachable_gateway_skips_instead_of_failing(runner, ctx, mock_api):
    mock_api.get(GATEWAY_HEALTH).mock(side_effect=REFUSED)

    outcome = runner.system_deployed(ctx)

    assert outcome.kind is OutcomeKind.SKIP
    assert "localhost:8085" in outcome.reason


@pytest.mark.parametrize("status, kind", [(200, OutcomeKind.OK), (503, OutcomeKind.OK), (404, OutcomeKind.FAIL)])
def test_deployed_gateway_accepts_200_or_503(runner, ctx, mock_api, status, kind):
    mock_api.get(GATEWAY_HEALTH).mock(return_value=httpx.Response(status, json={"status": "UP"}))
    assert runner.system_deployed(ctx).kind is kind


def test_health_map_only_contains_reachable_services(runner, ctx, mock_api):
    _healthy(mock_api)

    assert runner.collect_service_health(ctx).is_ok

    assert set(ctx.health) == {"api-gateway", "gestion-perfil", "jwt-service", "notifications"}
    assert ctx.health["jwt-service"].status is ServiceStatus.UP
    assert runner.all_services_report(ctx, "UP").is_ok
    assert runner.health_includes_version_and_uptime(ctx).is_ok


def test_no_reachable_service_skips_the_health_checks(runner, ctx, mock_api):
    _all_down(mock_api)
    runner.collect_service_health(ctx)

    assert runner.all_services_report(ctx, "UP").kind is OutcomeKind.SKIP
    assert runner.health_includes_version_and_uptime(ctx).kind is OutcomeKind.SKIP


def test_framework_service_reporting_down_in_body_fails(runner, ctx, mock_api):
    _all_down(mock_api)
    mock_api.get(GATEWAY_HEALTH).mock(return_value=httpx.Response(200, json={"status": "DOWN"}))
    runner.collect_service_health(ctx)

    outcome = runner.all_services_report(ctx, "UP")

    assert outcome.kind is OutcomeKind.FAIL
    assert "api-gateway" in outcome.reason and "DOWN" in outcome.reason


def test_expected_status_other_than_up_accepts_client_errors(runner, ctx, mock_api):
    _all_down(mock_api)
    mock_api.get(HEALTH_URLS["notifications"]).mock(return_value=httpx.Response(404, text="not here"))
    runner.collect_service_health(ctx)

    assert runner.all_services_report(ctx, "DOWN").is_ok
    assert runner.all_services_report(ctx, "UP").kind is OutcomeKind.FAIL


def test_custom_service_without_version_or_checks_fails(runner, ctx, mock_api):
    _all_down(mock_api)
    mock_api.get(HEALTH_URLS["notifications"]).mock(return_value=httpx.Response(200, json={"status": "UP"}))
    runner.collect_service_health(ctx)

    outcome = runner.health_includes_version_and_uptime(ctx)

    assert outcome.kind is OutcomeKind.FAIL
    assert "notifications" in outcome.reason


def test_non_json_health_body_fails_with_excerpt(runner, ctx, mock_api):
    _all_down(mock_api)
    mock_api.get(HEALTH_URLS["orquestador"]).mock(return_value=httpx.Response(200, text="OK " * 200))
    runner.collect_service_health(ctx)

    outcome = runner.health_includes_version_and_uptime(ctx)

    assert outcome.kind is OutcomeKind.FAIL
    assert "OK OK" in outcome.reason
    assert len(outcome.reason) < 400


def test_health_checks_show_correct_info_collects_when_needed(runner, ctx, mock_api):
    _healthy(mock_api)
    assert runner.health_checks_show_correct_info(ctx).is_ok
    assert "api-gateway" in ctx.health


# ===== monitoring =====

def test_monitoring_unreachable_skips(runner, ctx, mock_api):
    mock_api.get(MONITOR).mock(side_effect=REFUSED)
    assert runner.monitoring_available(ctx).kind is OutcomeKind.SKIP
    assert runner.query_global_health(ctx).kind is OutcomeKind.SKIP


def test_empty_global_health_is_valid_and_repeatable(runner, ctx, mock_api):
    mock_api.get(MONITOR).mock(return_value=httpx.Response(200, json={}))

    for _ in range(3):
        assert runner.query_global_health(ctx).is_ok
        assert runner.global_health_lists_services(ctx).is_ok
        assert runner.every_service_has_status(ctx).is_ok


def test_invalid_service_status_in_global_health_fails(runner, ctx, mock_api):
    mock_api.get(MONITOR).mock(return_value=httpx.Response(200, json={"jwt-service": {"status": "ACTIVE"}}))
    runner.query_global_health(ctx)

    outcome = runner.every_service_has_status(ctx)

    assert outcome.kind is OutcomeKind.FAIL
    assert "ACTIVE" in outcome.reason


def test_notification_scenario_checks_the_monitor_response(runner, ctx, mock_api):
    mock_api.get(MONITOR).mock(return_value=httpx.Response(200, json={"notifications": {"status": "DOWN"}}))

    assert runner.service_registered_in_monitor(ctx).is_ok
    assert runner.service_stops_responding(ctx).is_ok
    assert runner.monitor_detects_failure(ctx).is_ok
    assert runner.monitor_sends_notification(ctx).is_ok


def test_monitor_must_report_at_least_one_service_up(runner, ctx, mock_api):
    mock_api.get(MONITOR).mock(return_value=httpx.Response(200, json={"a": {"status": "DOWN"}}))
    assert runner.monitor_reports_services_up(ctx).kind is OutcomeKind.FAIL


def test_monitor_check_without_prior_response_fails(runner, ctx):
    outcome = runner.monitor_detects_failure(ctx)
    assert outcome.kind is OutcomeKind.FAIL


# ===== logs =====

def test_emit_log_sleeps_the_configured_delay(runner, ctx, mock_api, sleeps):
    mock_api.get("http://localhost:8080/health").mock(side_effect=REFUSED)

    assert runner.service_emits_log(ctx).is_ok
    assert sleeps == [2.0]


def test_poll_strategy_stops_as_soon_as_the_backend_is_ready(sut, mock_api):
    sut = dataclasses.replace(sut, log_settle_strategy=LogSettleStrategy.POLL, log_poll_interval=0.5)
    route = mock_api.get(LOKI_READY).mock(side_effect=[httpx.Response(503), REFUSED, httpx.Response(200)])
    sleeps = []
    with ProbeClient(sut) as client:
        runner = ScenarioRunner(client, sleep=sleeps.append, clock=lambda: 0.0)
        assert runner.settle_logs() is True

    assert route.call_count == 3
    assert sleeps == [0.5, 0.5]


def test_poll_strategy_gives_up_at_the_deadline(sut, mock_api):
    sut = dataclasses.replace(sut, log_settle_strategy=LogSettleStrategy.POLL, log_settle_seconds=1.0)
    mock_api.get(LOKI_READY).mock(return_value=httpx.Response(503))
    ticks = iter([0.0, 0.5, 1.5])
    with ProbeClient(sut) as client:
        runner = ScenarioRunner(client, sleep=lambda s: None, clock=lambda: next(ticks))
        assert runner.settle_logs() is False


def test_unreachable_log_backend_skips_the_log_checks(runner, ctx, mock_api):
    mock_api.get(LOKI_READY).mock(side_effect=REFUSED)

    assert runner.query_log_backend(ctx).is_ok
    assert ctx.log_backend is None
    assert runner.log_backend_has_entries(ctx).kind is OutcomeKind.SKIP
    assert runner.logs_reach_central_store(ctx).kind is OutcomeKind.SKIP


def test_ready_log_backend_passes(runner, ctx, mock_api):
    mock_api.get(LOKI_READY).mock(return_value=httpx.Response(200, text="ready"))

    runner.query_log_backend(ctx)

    assert runner.log_backend_has_entries(ctx).is_ok
    assert runner.logs_reach_central_store(ctx).is_ok


# ===== user API =====

def test_register_then_schema(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(
        return_value=httpx.Response(201, json={"error": False, "respuesta": "Usuario creado"})
    )

    assert runner.register_user(ctx).is_ok
    assert runner.assert_last_status(ctx, 201).is_ok
    assert runner.assert_last_body_not_blank(ctx).is_ok
    assert runner.assert_last_schema(ctx, "message_dto").is_ok
    assert ctx.last_user is not None


def test_wrong_status_fails_with_expected_and_actual(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(409, json={"error": True}))
    runner.register_user(ctx)

    outcome = runner.assert_last_status(ctx, 201)

    assert outcome.kind is OutcomeKind.FAIL
    assert "201" in outcome.reason and "409" in outcome.reason


def test_register_then_login_yields_a_token(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(201, json={"error": False, "respuesta": "ok"}))
    mock_api.post(f"{USER_API}/sesiones").mock(
        return_value=httpx.Response(200, json={"error": False, "respuesta": {"token": "jwt.value"}})
    )

    assert runner.ensure_registered_user(ctx).is_ok
    assert runner.login_current_user(ctx).is_ok
    assert runner.assert_last_status(ctx, 200).is_ok
    assert runner.assert_token_obtained(ctx).is_ok
    assert ctx.user_token.token == "jwt.value"
    assert ctx.user_token.subject == ctx.last_user.username


def test_failed_login_caches_no_token(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(201, json={"error": False, "respuesta": "ok"}))
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(401, json={"error": True, "respuesta": "no"}))

    runner.ensure_registered_user(ctx)
    assert runner.login_current_user(ctx).is_ok

    assert ctx.user_token is None
    assert runner.assert_token_obtained(ctx).kind is OutcomeKind.FAIL


def test_recovery_code_for_the_last_user(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(201, json={"error": False, "respuesta": "ok"}))
    route = mock_api.post(f"{USER_API}/codigos").mock(return_value=httpx.Response(200, json={"error": False, "respuesta": "sent"}))

    runner.ensure_registered_user(ctx)
    assert runner.request_recovery_code(ctx).is_ok
    assert ctx.last_user.username.encode() in route.calls.last.request.content


def test_recovery_code_without_a_user_fails(runner, ctx):
    assert runner.request_recovery_code(ctx).kind is OutcomeKind.FAIL


def test_admin_deletes_a_user_then_gets_404(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(201, json={"error": False, "respuesta": "ok"}))
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(200, json={"token": "admin-jwt"}))
    runner.ensure_registered_user(ctx)
    delete = mock_api.delete(f"{USER_API}/usuarios/{ctx.last_user.username}").mock(
        side_effect=[httpx.Response(200, json={"error": False, "respuesta": "deleted"}), httpx.Response(404)]
    )

    assert runner.login_admin(ctx).is_ok
    runner.delete_current_user(ctx)
    assert runner.assert_last_status(ctx, 200).is_ok
    runner.delete_current_user(ctx)
    assert runner.assert_last_status(ctx, 404).is_ok
    assert delete.calls.last.request.headers["Authorization"] == "Bearer admin-jwt"


def test_admin_login_failure_fails_the_scenario(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(401))

    outcome = runner.login_admin(ctx)

    assert outcome.kind is OutcomeKind.FAIL
    assert ctx.admin_token is None


def test_listing_users_without_a_session_sends_no_token(runner, ctx, mock_api):
    route = mock_api.get(f"{USER_API}/usuarios").mock(return_value=httpx.Response(401))

    runner.clear_session(ctx)
    runner.list_users(ctx, 0)

    assert runner.assert_last_status(ctx, 401).is_ok
    assert "Authorization" not in route.calls.last.request.headers


def test_non_admin_token_is_used_for_listing(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(return_value=httpx.Response(201, json={"error": False, "respuesta": "ok"}))
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(200, json={"token": "user-jwt"}))
    route = mock_api.get(f"{USER_API}/usuarios").mock(return_value=httpx.Response(403))

    runner.ensure_registered_user(ctx)
    assert runner.login_non_admin(ctx).is_ok
    runner.list_users(ctx, 0)

    assert runner.assert_last_status(ctx, 403).is_ok
    assert route.calls.last.request.headers["Authorization"] == "Bearer user-jwt"


def test_admin_lists_users_and_negative_page(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(200, json={"respuesta": {"token": "admin-jwt"}}))
    page = {"error": False, "respuesta": [{"usuario": "juan"}]}
    mock_api.get(f"{USER_API}/usuarios", params={"page": "0"}).mock(return_value=httpx.Response(200, json=page))
    mock_api.get(f"{USER_API}/usuarios", params={"page": "-1"}).mock(return_value=httpx.Response(400, json={"error": True}))

    runner.login_admin(ctx)
    runner.list_users(ctx, 0)
    assert runner.assert_last_status(ctx, 200).is_ok
    assert runner.assert_user_list(ctx).is_ok
    assert runner.assert_last_schema(ctx, "user_page").is_ok

    runner.list_users(ctx, -1)
    assert runner.assert_last_status(ctx, 400).is_ok
    assert runner.assert_user_list(ctx).kind is OutcomeKind.FAIL


def test_delete_missing_user(runner, ctx, mock_api):
    route = mock_api.delete(f"{USER_API}/usuarios/{MISSING_USERNAME}").mock(return_value=httpx.Response(404))

    runner.delete_missing_user(ctx)

    assert route.called
    assert runner.assert_last_status(ctx, 404).is_ok


def test_unreachable_user_api_skips_registration(runner, ctx, mock_api):
    mock_api.post(f"{USER_API}/usuarios").mock(side_effect=REFUSED)
    mock_api.get(HEALTH_URLS["jwt-service"]).mock(side_effect=REFUSED)

    assert runner.user_api_available(ctx).kind is OutcomeKind.SKIP
    assert runner.register_user(ctx).kind is OutcomeKind.SKIP
    assert ctx.last_user is None


def test_gateway_flow(runner, ctx, mock_api):
    mock_api.post("http://localhost:8085/api/v1/auth/register").mock(return_value=httpx.Response(201))
    mock_api.get(GATEWAY_HEALTH).mock(side_effect=REFUSED)

    assert runner.register_user_via_gateway(ctx).is_ok
    assert runner.user_performs_operations(ctx).is_ok
    assert ctx.last_response.status_code == 201


def test_contexts_from_one_runner_are_isolated(runner, mock_api):
    mock_api.post(f"{USER_API}/sesiones").mock(return_value=httpx.Response(200, json={"token": "admin-jwt"}))
    first = runner.new_context("first")
    runner.login_admin(first)

    second = runner.new_context("second")

    assert first.bearer == "admin-jwt"
    assert second.bearer is None
    assert second.admin_token is None


# ===== behave bridge =====

def _behave_context():
    skipped = []
    scenario = types.SimpleNamespace(skip=lambda reason=None: skipped.append(reason))
    return types.SimpleNamespace(scenario=scenario), skipped


def test_apply_outcome_skip_marks_the_scenario_skipped():
    context, skipped = _behave_context()
    apply_outcome(context, Outcome.skip("gateway down"))
    assert skipped == ["gateway down"]


def test_apply_outcome_fail_raises_assertion_error():
    context, skipped = _behave_context()
    with pytest.raises(AssertionError, match="expected 200"):
        apply_outcome(context, Outcome.fail("expected 200"))
    assert skipped == []


def test_apply_outcome_ok_does_nothing():
    context, skipped = _behave_context()
    apply_outcome(context, Outcome.ok())
    assert skipped == []


def test_runner_uses_a_fresh_generator_per_default(client):
    assert isinstance(ScenarioRunner(client).data_gen, DataGenerator)


def test_misconfigured_gateway_url_errors_instead_of_skipping(sut):
    broken = dataclasses.replace(sut, api_gateway_url="localhost:8085")
    with ProbeClient(broken) as client:
        runner = ScenarioRunner(client)
        with pytest.raises(httpx.UnsupportedProtocol):
            runner.system_deployed(runner.new_context("misconfigured"))


def _finished_scenario(status, steps=(), **extra):
    return types.SimpleNamespace(status=types.SimpleNamespace(name=status), steps=list(steps), **extra)


def _step(status, error_message=None):
    return types.SimpleNamespace(status=types.SimpleNamespace(name=status), error_message=error_message)


def test_passed_scenario_reads_back_as_ok():
    assert scenario_outcome(_finished_scenario("passed")) == Outcome.ok()


def test_skipped_scenario_keeps_the_skip_reason():
    outcome = scenario_outcome(_finished_scenario("skipped", skip_reason="gateway down"))
    assert outcome == Outcome.skip("gateway down")


def test_untested_scenario_without_reason_is_a_skip():
    assert scenario_outcome(_finished_scenario("untested")) == Outcome.skip("untested")


def test_failed_scenario_carries_the_failing_step_message():
    steps = [_step("passed"), _step("failed", "expected 404 but got 200"), _step("skipped")]
    assert scenario_outcome(_finished_scenario("failed", steps)) == Outcome.fail("expected 404 but got 200")


def test_errored_step_without_message_falls_back_to_the_status():
    assert scenario_outcome(_finished_scenario("error", [_step("error")])) == Outcome.fail("error")
