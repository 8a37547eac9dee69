from behave import given, when, then

from acceptance_bench.bench.runner import apply_outcome


# ===== deployment health =====

@given("the system is deployed")
def step_system_deployed(context):
    apply_outcome(context, context.runner.system_deployed(context.ctx))


@when("I query the health check of every microservice")
def step_query_each_health(context):
    apply_outcome(context, context.runner.collect_service_health(context.ctx))


@then('every microservice should answer with status "{status}"')
def step_every_service_status(context, status):
    apply_outcome(context, context.runner.all_services_report(context.ctx, status))


@then("every response should include version and uptime")
def step_version_and_uptime(context):
    apply_outcome(context, context.runner.health_includes_version_and_uptime(context.ctx))


# ===== monitoring =====

@given("the monitoring system is available")
def step_monitoring_available(context):
    apply_outcome(context, context.runner.monitoring_available(context.ctx))


@when("I query the global health status")
def step_query_global_health(context):
    apply_outcome(context, context.runner.query_global_health(context.ctx))


@then("I should see every registered microservice")
def step_see_registered_services(context):
    apply_outcome(context, context.runner.global_health_lists_services(context.ctx))


@then("every service should have a status (UP, DOWN, or UNKNOWN)")
def step_every_service_has_status(context):
    apply_outcome(context, context.runner.every_service_has_status(context.ctx))


# ===== centralized logs =====

@given("a microservice emits a log")
def step_service_emits_log(context):
    apply_outcome(context, context.runner.service_emits_log(context.ctx))


@when("I query the centralized log system")
def step_query_log_system(context):
    apply_outcome(context, context.runner.query_log_backend(context.ctx))


@then("I should be able to find the microservice log")
def step_find_log(context):
    apply_outcome(context, context.runner.log_backend_has_entries(context.ctx))


@then("the log should contain the service name and level")
def step_log_has_service_and_level(context):
    apply_outcome(context, context.runner.log_backend_has_entries(context.ctx))


# ===== failure notifications =====

@given("a microservice is registered in the monitoring system")
def step_service_registered(context):
    apply_outcome(context, context.runner.service_registered_in_monitor(context.ctx))


@when("the microservice stops responding")
def step_service_stops(context):
    apply_outcome(context, context.runner.service_stops_responding(context.ctx))


@then("the monitoring system should detect the failure")
def step_monitor_detects_failure(context):
    apply_outcome(context, context.runner.monitor_detects_failure(context.ctx))


@then("it should send a notification to the configured emails")
def step_monitor_notifies(context):
    apply_outcome(context, context.runner.monitor_sends_notification(context.ctx))


# ===== full flow =====

@given("a user registers in the system")
def step_user_registers(context):
    apply_outcome(context, context.runner.register_user_via_gateway(context.ctx))


@when("the user performs operations")
def step_user_operates(context):
    apply_outcome(context, context.runner.user_performs_operations(context.ctx))


@then("the logs should be recorded in the centralized system")
def step_logs_recorded(context):
    apply_outcome(context, context.runner.logs_reach_central_store(context.ctx))


@then("the monitoring system should report every service as UP")
def step_monitor_reports_up(context):
    apply_outcome(context, context.runner.monitor_reports_services_up(context.ctx))


@then("the health checks should show correct information")
def step_health_checks_correct(context):
    apply_outcome(context, context.runner.health_checks_show_correct_info(context.ctx))
