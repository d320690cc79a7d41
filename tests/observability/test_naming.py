import pytest

from flowtrace.observability.naming import (
    build_node_span_name,
    build_request_span_name,
    build_workflow_span_name,
    naming_mode,
    sanitize_segment,
)


class TestSanitizeSegment:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Demo", "Demo"),
            ("My Flow", "My-Flow"),
            ("  My   Flow  ", "My-Flow"),
            ("a/b:c", "a-b-c"),
            ("v1.2_x-y", "v1.2_x-y"),
            (42, "42"),
        ],
    )
    def test_sanitization(self, value, expected):
        assert sanitize_segment(value) == expected

    @pytest.mark.parametrize("value", [None, "", False])
    def test_empty_values_use_default(self, value):
        assert sanitize_segment(value, "wf") == "wf"

    def test_whitespace_only_uses_default(self):
        assert sanitize_segment("   ", "wf") == "wf"

    def test_capped_at_80_characters(self):
        assert sanitize_segment("x" * 200) == "x" * 80


class TestWorkflowSpanName:
    def test_constant_by_default(self):
        assert build_workflow_span_name("wf1", "Demo", "exec-1", "exec-1") == "n8n.workflow.execute"

    def test_dynamic(self):
        name = build_workflow_span_name("wf1", "My Demo", "exec-1", "exec-1", dynamic=True)
        assert name == "wf1-My-Demo-exec-1"

    def test_dynamic_with_missing_identifiers(self):
        assert build_workflow_span_name(None, "", None, None, dynamic=True) == "wf-workflow-exec"

    def test_pattern_wins_over_dynamic(self):
        name = build_workflow_span_name(
            "wf1",
            "My Demo",
            "exec-1",
            "sess 9",
            pattern="{workflowName}/{executionId}/{sessionId}/{workflowId}",
            dynamic=True,
        )
        assert name == "My-Demo/exec-1/sess-9/wf1"

    def test_pattern_placeholder_defaults(self):
        name = build_workflow_span_name(
            None, None, None, None, pattern="{workflowId}:{workflowName}:{executionId}:{sessionId}"
        )
        assert name == "wf:workflow:exec:sess"

    def test_pattern_result_is_capped(self):
        name = build_workflow_span_name("w" * 80, "n" * 80, "e" * 80, "s", pattern="{workflowId}{workflowName}{executionId}")
        assert len(name) == 180

    @pytest.mark.parametrize("pattern", ["", "   ", None])
    def test_blank_pattern_is_ignored(self, pattern):
        assert build_workflow_span_name("wf1", "Demo", "1", "1", pattern=pattern) == "n8n.workflow.execute"


class TestRequestSpanName:
    def test_constant_by_default(self):
        assert build_request_span_name("wf1", "Demo", "exec-1", "exec-1") == "n8n.workflow.request"

    def test_dynamic(self):
        assert build_request_span_name("wf1", "Demo", "exec-1", "exec-1", dynamic=True) == "wf1-Demo-exec-1"

    def test_pattern(self):
        assert build_request_span_name("wf1", "Demo", "1", "1", pattern="req:{workflowName}") == "req:Demo"


class TestNodeSpanName:
    def test_node_name_by_default(self):
        assert build_node_span_name("OpenAI", "LLM") == "OpenAI"

    @pytest.mark.parametrize("node_name", [None, "", 42])
    def test_missing_node_name(self, node_name):
        assert build_node_span_name(node_name, "LLM") == "unknown-node"

    def test_kind_in_name(self):
        name = build_node_span_name("OpenAI", "LLM", use_node_name=False, kind_in_name=True)
        assert name == "n8n.node.LLM.execute"

    def test_constant(self):
        assert build_node_span_name("OpenAI", "LLM", use_node_name=False) == "n8n.node.execute"

    def test_naming_mode(self):
        assert naming_mode(True) == "dynamic"
        assert naming_mode(False) == "constant"
