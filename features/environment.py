"""
Behave hooks.

- before_all: resolve the SUT context (env vars, -D userdata, optional YAML
  file) and build the shared, stateless collaborators.
- before_scenario: a brand-new ScenarioContext; nothing survives between
  scenarios except the run report.
- after_scenario: settle the scenario's terminal state and record it.
- after_all: write the JSON report and close the HTTP client.
"""
from acceptance_bench.bench.data_gen import DataGenerator
from acceptance_bench.bench.runner import ScenarioRunner, scenario_outcome
from acceptance_bench.export.result_sink import ResultSink
from acceptance_bench.logging_setup import configure_logging
from acceptance_bench.sut.client import ProbeClient
from acceptance_bench.sut.factory import SUTFactory


def before_all(context):
    configure_logging()
    userdata = dict(context.config.userdata) if context.config.userdata else {}

    context.sut = SUTFactory(userdata=userdata).build()
    context.sink = ResultSink(context.sut)
    context.client = ProbeClient(context.sut, recorder=context.sink.record_event)
    context.runner = ScenarioRunner(context.client, data_gen=DataGenerator())


def before_scenario(context, scenario):
    context.ctx = context.runner.new_context(scenario.name)


def before_step(context, step):
    context.ctx.advance(step.step_type)


def after_scenario(context, scenario):
    ctx = context.ctx
    ctx.finish(scenario_outcome(scenario))
    context.sink.record_scenario(scenario.feature.name, ctx)


def after_all(context):
    if not hasattr(context, "sink"):
        return
    context.sink.write()
    context.client.close()
