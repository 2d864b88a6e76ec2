import time

import pytest

from src.gateway.dispatcher import ToolDispatcher
from src.gateway.errors import ToolError
from src.gateway.pipeline import (
    ExecutionContext,
    FieldEqualsCondition,
    NonEmptyCondition,
    Pipeline,
    PipelineEngine,
    PipelineStep,
    list_and_create_pipeline,
    resolve_path,
)
from src.tools.registry import default_registry


class RecordingExecutor:
    """Stands in for the dispatcher; answers from a name -> result (or exception) map."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, name, params):
        self.calls.append((name, params))
        outcome = self.responses[name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_empty_pipeline_returns_empty_and_records_nothing(engine, metrics):
    assert engine.execute_pipeline({"steps": []}) == []
    assert metrics.get_metrics() == []


def test_skipped_create_step_when_list_is_empty(engine, stub_client, metrics):
    pipeline = {
        "steps": [
            {"toolName": "listIssues", "params": {"teamId": "T1"}},
            {
                "toolName": "createIssue",
                "params": {},
                "condition": lambda r: len(r["nodes"]) > 0,
                "transform": lambda r: {"title": "follow-up", "teamId": "T1"},
            },
        ]
    }

    assert engine.execute_pipeline(pipeline) == [{"nodes": []}]
    assert [c[0] for c in stub_client.calls] == ["issues"]
    assert [m.tool_name for m in metrics.get_metrics()] == ["listIssues"]


def test_declarative_condition_and_transform(make_client, metrics):
    client = make_client(issues_result={"nodes": [{"id": "I-1", "title": "Login fails", "team": {"id": "T9"}}]})
    dispatcher = ToolDispatcher(default_registry(), client, metrics)
    engine = PipelineEngine(dispatcher.execute_tool)

    results = engine.execute_pipeline({
        "steps": [
            {"toolName": "listIssues", "params": {"teamId": "T9"}},
            {
                "toolName": "createIssue",
                "params": {},
                "condition": {"kind": "non_empty", "path": "nodes"},
                "transform": {
                    "kind": "from_result",
                    "params": {"title": "follow-up"},
                    "fields": {"teamId": "nodes.0.team.id", "description": "nodes.0.title"},
                },
            },
        ]
    })

    assert len(results) == 2
    assert client.calls[1] == ("create_issue", {"title": "follow-up", "teamId": "T9", "description": "Login fails"})
    assert [m.success for m in metrics.get_metrics()] == [True, True]


def test_skip_does_not_change_previous_result():
    executor = RecordingExecutor({
        "listIssues": {"nodes": [{"id": "I-1"}]},
        "createIssue": {"id": "NEW"},
    })
    engine = PipelineEngine(executor)

    seen = []

    def never(prev):
        seen.append(prev)
        return False

    def record(prev):
        seen.append(prev)
        return True

    results = engine.execute_pipeline({
        "steps": [
            {"toolName": "listIssues", "params": {}},
            {"toolName": "createIssue", "params": {"title": "a", "teamId": "T"}, "condition": never},
            {"toolName": "createIssue", "params": {"title": "b", "teamId": "T"}, "condition": record},
        ]
    })

    assert seen == [{"nodes": [{"id": "I-1"}]}, {"nodes": [{"id": "I-1"}]}]
    assert results == [{"nodes": [{"id": "I-1"}]}, {"id": "NEW"}]
    assert [c[1]["title"] for c in executor.calls if c[0] == "createIssue"] == ["b"]


def test_first_step_condition_sees_none():
    executor = RecordingExecutor({"listIssues": {"nodes": []}})
    engine = PipelineEngine(executor)

    results = engine.execute_pipeline({
        "steps": [{"toolName": "listIssues", "params": {}, "condition": {"kind": "non_empty"}}]
    })

    assert results == []
    assert executor.calls == []


def test_failing_step_aborts_and_discards_results():
    executor = RecordingExecutor({
        "listIssues": {"nodes": []},
        "createIssue": ToolError("Linear is down", code="NETWORK_ERROR"),
    })
    engine = PipelineEngine(executor)

    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({
            "steps": [
                {"toolName": "listIssues", "params": {}},
                {"toolName": "createIssue", "params": {"title": "x", "teamId": "T"}},
                {"toolName": "listIssues", "params": {}},
            ]
        })

    err = exc_info.value
    assert err.code == "PIPELINE_STEP_ERROR"
    assert err.message == "Linear is down"
    assert err.retryable is False
    assert err.details["step"] == 1
    assert err.details["toolName"] == "createIssue"
    assert err.details["cause"]["code"] == "NETWORK_ERROR"
    assert [c[0] for c in executor.calls] == ["listIssues", "createIssue"]


def test_invalid_argument_step_fails_pipeline(engine, metrics):
    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({"steps": [{"toolName": "createIssue", "params": {"teamId": "T1"}}]})

    assert exc_info.value.code == "PIPELINE_STEP_ERROR"
    assert exc_info.value.details["cause"]["code"] == "INVALID_ARGUMENTS"
    assert len(metrics.get_metrics()) == 1


def test_transform_exception_becomes_step_error():
    executor = RecordingExecutor({"listIssues": {"nodes": []}})
    engine = PipelineEngine(executor)

    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({
            "steps": [
                {"toolName": "listIssues", "params": {}},
                {"toolName": "createIssue", "params": {}, "transform": lambda r: r["nodes"][0]},
            ]
        })

    assert exc_info.value.code == "PIPELINE_STEP_ERROR"
    assert exc_info.value.retryable is False
    assert len(executor.calls) == 1


@pytest.mark.parametrize("pipeline_input", [
    None,
    [],
    {},
    {"steps": "listIssues"},
    {"steps": [{"params": {}}]},
    {"steps": [{"toolName": "listIssues", "condition": {"kind": "sometimes"}}]},
    {"steps": [{"toolName": "listIssues", "transform": {"kind": "literal", "params": "nope"}}]},
    {"steps": [], "context": {"timeout": -1}},
])
def test_invalid_pipeline_shape(engine, metrics, pipeline_input):
    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline(pipeline_input)

    assert exc_info.value.code == "INVALID_PIPELINE"
    assert metrics.get_metrics() == []


def test_result_count_matches_executed_steps():
    executor = RecordingExecutor({"listIssues": {"nodes": [1]}})
    engine = PipelineEngine(executor)

    steps = [
        {"toolName": "listIssues", "params": {}},
        {"toolName": "listIssues", "params": {}, "condition": {"kind": "is_empty", "path": "nodes"}},
        {"toolName": "listIssues", "params": {}, "condition": {"kind": "field_equals", "path": "nodes.0", "value": 1}},
        {"toolName": "listIssues", "params": {}, "condition": {"kind": "always"}},
    ]

    assert len(engine.execute_pipeline({"steps": steps})) == 3


def test_literal_transform_returns_fresh_copy():
    executor = RecordingExecutor({"createIssue": {"id": "NEW"}})
    engine = PipelineEngine(executor)
    pipeline = Pipeline.model_validate({
        "steps": [
            {"toolName": "createIssue", "transform": {"kind": "literal", "params": {"title": "t", "teamId": "T"}}},
        ]
    })

    engine.execute_pipeline(pipeline)
    executor.calls[0][1]["title"] = "mutated"

    assert pipeline.steps[0].transform.params["title"] == "t"


def test_context_generated_and_overlaid():
    generated = ExecutionContext()
    assert generated.request_id
    assert generated.timestamp <= time.time()

    explicit = ExecutionContext.model_validate({"requestId": "req-1", "retryCount": 2, "parentContext": "p"})
    assert explicit.request_id == "req-1"
    assert explicit.retry_count == 2
    assert explicit.parent_context == "p"
    assert explicit.timestamp > 0


def test_timeout_ignored_unless_enforced():
    executor = RecordingExecutor({"listIssues": {"nodes": []}})
    engine = PipelineEngine(executor)

    results = engine.execute_pipeline({
        "steps": [{"toolName": "listIssues", "params": {}}],
        "context": {"requestId": "req-1", "timeout": 0.000001},
    })
    assert results == [{"nodes": []}]


def test_enforced_timeout_aborts_between_steps():
    def slow(name, params):
        time.sleep(0.05)
        return {"nodes": []}

    engine = PipelineEngine(slow, enforce_timeout=True)

    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({
            "steps": [{"toolName": "listIssues", "params": {}}, {"toolName": "listIssues", "params": {}}],
            "context": {"timeout": 0.01},
        })

    assert exc_info.value.code == "PIPELINE_TIMEOUT"
    assert exc_info.value.retryable is False
    assert exc_info.value.details["step"] == 1


def test_list_and_create_pipeline_helper():
    executor = RecordingExecutor({
        "listIssues": {"nodes": [{"id": "I-1", "title": "Crash on save"}]},
        "createIssue": {"id": "I-2"},
    })
    engine = PipelineEngine(executor)

    pipeline = list_and_create_pipeline(
        {"teamId": "T1"},
        lambda issue: {"title": f"Follow up: {issue['title']}", "teamId": "T1"},
    )

    assert engine.execute_pipeline(pipeline) == [{"nodes": [{"id": "I-1", "title": "Crash on save"}]}, {"id": "I-2"}]
    assert executor.calls[1] == ("createIssue", {"title": "Follow up: Crash on save", "teamId": "T1"})


def test_resolve_path_and_conditions():
    result = {"nodes": [{"id": "I-1", "state": None}], "count": 0}

    assert resolve_path(result, "nodes.0.id") == "I-1"
    assert resolve_path(result, "nodes.5.id") is None
    assert resolve_path(result, "missing.path") is None
    assert resolve_path(None, "nodes") is None
    assert resolve_path(result, None) is result

    assert NonEmptyCondition(path="nodes")(result) is True
    assert NonEmptyCondition(path="count")(result) is False
    assert FieldEqualsCondition(path="nodes.0.id", value="I-1")(result) is True
    assert PipelineStep(tool_name="listIssues").should_run(None) is True


def test_zero_timeout_is_a_valid_context(engine, metrics):
    assert engine.execute_pipeline({"steps": [], "context": {"timeout": 0}}) == []
    assert ExecutionContext.model_validate({"timeout": 0}).timeout == 0
    assert metrics.get_metrics() == []


def test_negative_timeout_is_invalid(engine):
    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({"steps": [], "context": {"timeout": -1}})

    assert exc_info.value.code == "INVALID_PIPELINE"


def test_enforced_zero_timeout_aborts():
    def slow(name, params):
        time.sleep(0.01)
        return {"nodes": []}

    engine = PipelineEngine(slow, enforce_timeout=True)

    with pytest.raises(ToolError) as exc_info:
        engine.execute_pipeline({
            "steps": [{"toolName": "listIssues", "params": {}}, {"toolName": "listIssues", "params": {}}],
            "context": {"timeout": 0},
        })

    assert exc_info.value.code == "PIPELINE_TIMEOUT"


def test_transform_extra_keys_do_not_fail_next_step(make_client, metrics):
    client = make_client(issues_result={"nodes": [{"id": "i1", "team": {"id": "T9"}}]}, created={"id": "new"})
    dispatcher = ToolDispatcher(default_registry(), client, metrics)
    engine = PipelineEngine(dispatcher.execute_tool)

    results = engine.execute_pipeline({
        "steps": [
            {"toolName": "listIssues", "params": {}},
            {
                "toolName": "createIssue",
                "params": {},
                "transform": {
                    "kind": "from_result",
                    "params": {"title": "Follow up", "source": "pipeline"},
                    "fields": {"teamId": "nodes.0.team.id", "issueId": "nodes.0.id"},
                },
            },
        ],
    })

    assert results[1] == {"id": "new"}
    assert client.calls[-1] == ("create_issue", {"teamId": "T9", "title": "Follow up"})
