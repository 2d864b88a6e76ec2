import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.gateway.dispatcher import ToolDispatcher  # noqa: E402
from src.gateway.metrics import MetricsCollector  # noqa: E402
from src.gateway.pipeline import PipelineEngine  # noqa: E402
from src.gateway.server import ToolGateway  # noqa: E402
from src.tools.registry import default_registry  # noqa: E402


class StubLinearClient:
    """Records calls; returns canned results or raises the configured error."""

    def __init__(self, issues_result=None, created=None, error=None):
        self.issues_result = issues_result if issues_result is not None else {"nodes": []}
        self.created = created
        self.error = error
        self.calls = []

    def issues(self, **params):
        self.calls.append(("issues", params))
        if self.error is not None:
            raise self.error
        return self.issues_result

    def create_issue(self, **params):
        self.calls.append(("create_issue", params))
        if self.error is not None:
            raise self.error
        if self.created is not None:
            return self.created
        return {"id": "ISS-1", "title": params["title"], "status": "Todo"}


@pytest.fixture
def make_client():
    return StubLinearClient


@pytest.fixture
def stub_client():
    return StubLinearClient()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def dispatcher(stub_client, metrics):
    return ToolDispatcher(default_registry(), stub_client, metrics)


@pytest.fixture
def engine(dispatcher):
    return PipelineEngine(dispatcher.execute_tool)


@pytest.fixture
def gateway(dispatcher, metrics, engine):
    return ToolGateway(registry=dispatcher.registry, dispatcher=dispatcher, metrics=metrics, engine=engine)
