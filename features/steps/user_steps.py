from behave import given, when, then

from acceptance_bench.bench.runner import apply_outcome


@given("the service is available")
def step_service_available(context):
    apply_outcome(context, context.runner.user_api_available(context.ctx))


@when("I register a user with valid data")
def step_register_valid_user(context):
    apply_outcome(context, context.runner.register_user(context.ctx))


@given("a valid registered user exists")
def step_registered_user_exists(context):
    apply_outcome(context, context.runner.ensure_registered_user(context.ctx))


@when("I log in with correct credentials")
def step_login_correct_credentials(context):
    apply_outcome(context, context.runner.login_current_user(context.ctx))


@then("I should obtain a valid JWT token")
def step_token_obtained(context):
    apply_outcome(context, context.runner.assert_token_obtained(context.ctx))


@when("I request a recovery code for that user")
def step_request_recovery_code(context):
    apply_outcome(context, context.runner.request_recovery_code(context.ctx))


@given("I am logged in as admin")
def step_login_admin(context):
    apply_outcome(context, context.runner.login_admin(context.ctx))


@given("I am logged in as a user who is not an admin")
def step_login_non_admin(context):
    apply_outcome(context, context.runner.login_non_admin(context.ctx))


@given("I have not logged in")
def step_not_logged_in(context):
    apply_outcome(context, context.runner.clear_session(context.ctx))


@when("I list the users on page {page:d}")
def step_list_users(context, page):
    apply_outcome(context, context.runner.list_users(context.ctx, page))


@then("the body should contain a list of users")
def step_body_has_user_list(context):
    apply_outcome(context, context.runner.assert_user_list(context.ctx))


@when("I delete that user")
def step_delete_user(context):
    apply_outcome(context, context.runner.delete_current_user(context.ctx))


@when("I delete a user that does not exist")
def step_delete_missing_user(context):
    apply_outcome(context, context.runner.delete_missing_user(context.ctx))


# ---- checks on the last response ----

@then("the response status should be {status:d}")
def step_response_status(context, status):
    apply_outcome(context, context.runner.assert_last_status(context.ctx, status))


@then('the body matches the "{schema}" schema')
def step_body_matches_schema(context, schema):
    apply_outcome(context, context.runner.assert_last_schema(context.ctx, schema))


@then("the body should indicate success")
def step_body_indicates_success(context):
    apply_outcome(context, context.runner.assert_last_body_not_blank(context.ctx))
