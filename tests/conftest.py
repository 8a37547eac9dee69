import pytest
import respx

from acceptance_bench.bench.data_gen import DataGenerator
from acceptance_bench.bench.runner import ScenarioRunner
from acceptance_bench.sut.client import ProbeClient
from acceptance_bench.sut.factory import SUTFactory


@pytest.fixture
def sut():
    return SUTFactory(environ={}, userdata={}).build()


@pytest.fixture
def mock_api():
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def events():
    return []


@pytest.fixture
def client(sut, mock_api, events):
    c = ProbeClient(sut, recorder=events.append)
    yield c
    c.close()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def runner(client, sleeps):
    return ScenarioRunner(client, data_gen=DataGenerator(seed=1234), sleep=sleeps.append)


@pytest.fixture
def ctx(runner):
    return runner.new_context("unit scenario")
