"""Tests for node and workflow payload extraction."""
import json

import pytest

from flowtrace.observability.payloads import (
    ConnectionListResult,
    EmptyResult,
    MAX_OUTPUT_ITEMS,
    NamedConnectionsResult,
    NodeOutput,
    UnrecognizedResult,
    classify_result,
    extract_node_input,
    extract_node_output,
    extract_user_message,
    extract_workflow_error,
    extract_workflow_output,
    message_content,
    serialize_payload,
    truncate_io,
)


class ExplodingMapping(dict):
    """Mapping whose item access fails."""

    def __getitem__(self, key):
        raise RuntimeError("boom")


class ExplodingItem(dict):
    """Item whose membership test fails."""

    def __contains__(self, key):
        raise RuntimeError("bad item")


class TestExtractNodeInput:
    def test_single_record_is_unwrapped(self):
        execution_data = {"data": {"main": [[{"json": {"prompt": "hi"}}]]}}
        assert extract_node_input(execution_data) == {"prompt": "hi"}

    def test_multiple_records_in_order(self):
        execution_data = {
            "data": {
                "main": [
                    [{"json": {"n": 1}}, {"json": {"n": 2}}],
                    None,
                    [{"json": {"n": 3}}],
                ]
            }
        }
        assert extract_node_input(execution_data) == [{"n": 1}, {"n": 2}, {"n": 3}]

    def test_main_connection_comes_first(self):
        execution_data = {
            "data": {
                "ai_tool": [[{"json": {"from": "tool"}}]],
                "main": [[{"json": {"from": "main"}}]],
            }
        }
        assert extract_node_input(execution_data) == [{"from": "main"}, {"from": "tool"}]

    def test_items_without_json_are_skipped(self):
        execution_data = {"data": {"main": [[{"binary": {}}, {"json": {"a": 1}}, None]]}}
        assert extract_node_input(execution_data) == {"a": 1}

    def test_empty_json_record_is_kept(self):
        execution_data = {"data": {"main": [[{"json": {}}]]}}
        assert extract_node_input(execution_data) == {}

    @pytest.mark.parametrize(
        "execution_data",
        [
            None,
            {},
            {"data": None},
            {"data": {}},
            {"data": {"main": []}},
            {"data": {"main": [[]]}},
            {"data": {"main": "nope"}},
            {"data": [[{"json": {"a": 1}}]]},
        ],
    )
    def test_absent_input_is_none(self, execution_data):
        assert extract_node_input(execution_data) is None

    def test_objects_and_snake_case_are_read(self):
        class Item:
            def __init__(self, json):
                self.json = json

        class ExecutionData:
            def __init__(self):
                self.data = {"main": [[Item({"query": "q"})]]}

        assert extract_node_input(ExecutionData()) == {"query": "q"}

    def test_failure_becomes_diagnostic_payload(self):
        execution_data = {"data": ExplodingMapping(main=[[{"json": {"a": 1}}]])}
        assert extract_node_input(execution_data) == {"_error": "boom"}


class TestClassifyResult:
    def test_connection_list(self):
        shape = classify_result({"data": [[{"json": {"a": 1}}]]})
        assert isinstance(shape, ConnectionListResult)
        assert len(shape.connections) == 1

    def test_named_connections(self):
        shape = classify_result({"data": {"main": [[{"json": {"a": 1}}]]}})
        assert isinstance(shape, NamedConnectionsResult)
        assert shape.name == "main"

    @pytest.mark.parametrize("result", [None, {}, {"data": None}, "text"])
    def test_empty(self, result):
        assert isinstance(classify_result(result), EmptyResult)

    @pytest.mark.parametrize("data", ["text", 42, {"other": []}, {"main": "x"}])
    def test_unrecognized(self, data):
        shape = classify_result({"data": data})
        assert isinstance(shape, UnrecognizedResult)
        assert shape.data == data


class TestExtractNodeOutput:
    def test_connection_list_with_primary(self):
        output = extract_node_output({"data": [[{"json": {"response": "hello"}}]]})
        assert isinstance(output, NodeOutput)
        assert output.primary == "hello"
        assert output.items == [{"response": "hello"}]

    def test_named_main_connections(self):
        output = extract_node_output({"data": {"main": [[{"json": {"text": "t"}}]]}})
        assert output.primary == "t"

    def test_records_across_connections(self):
        result = {"data": [[{"json": {"n": 1}}], [{"json": {"n": 2}}]]}
        assert extract_node_output(result).items == [{"n": 1}, {"n": 2}]

    def test_primary_field_order(self):
        record = {
            "response": "r",
            "result": "res",
            "text": "t",
            "completion": "c",
            "output": "o",
        }
        assert extract_node_output({"data": [[{"json": record}]]}).primary == "o"

    def test_falsy_primary_fields_are_skipped(self):
        record = {"output": "", "completion": None, "text": "t"}
        assert extract_node_output({"data": [[{"json": record}]]}).primary == "t"

    def test_primary_only_probes_first_record(self):
        result = {"data": [[{"json": {"other": 1}}, {"json": {"output": "o"}}]]}
        assert extract_node_output(result).primary is None

    def test_items_are_capped(self):
        records = [{"json": {"n": n}} for n in range(MAX_OUTPUT_ITEMS + 5)]
        output = extract_node_output({"data": [records]})
        assert len(output.items) == MAX_OUTPUT_ITEMS
        assert output.items[-1] == {"n": MAX_OUTPUT_ITEMS - 1}

    @pytest.mark.parametrize(
        "result",
        [None, {}, {"data": None}, {"data": []}, {"data": [[]]}, {"data": "text"}, {"data": {"x": 1}}],
    )
    def test_no_records_is_none(self, result):
        assert extract_node_output(result) is None

    def test_failure_becomes_diagnostic_payload(self):
        result = {"data": [[ExplodingItem(json={"a": 1})]]}
        assert extract_node_output(result) == {"_error": "bad item"}


class TestExtractWorkflowOutput:
    def run_result(self, run_data, last_node):
        return {"data": {"resultData": {"runData": run_data, "lastNodeExecuted": last_node}}}

    def test_last_run_of_last_node(self):
        run_data = {
            "Start": [{"data": {"main": [[{"json": {"start": True}}]]}}],
            "OpenAI": [
                {"data": {"main": [[{"json": {"attempt": 1}}]]}},
                {"data": {"main": [[{"json": {"attempt": 2}}]]}},
            ],
        }
        assert extract_workflow_output(self.run_result(run_data, "OpenAI")) == {"attempt": 2}

    def test_multiple_records_are_listed(self):
        run_data = {"Set": [{"data": {"main": [[{"json": {"n": 1}}, {"json": {"n": 2}}]]}}]}
        assert extract_workflow_output(self.run_result(run_data, "Set")) == [{"n": 1}, {"n": 2}]

    @pytest.mark.parametrize(
        "run_data,last_node",
        [
            ({}, "Set"),
            ({"Set": []}, "Set"),
            ({"Set": [{"data": {"main": [[]]}}]}, "Set"),
            ({"Set": [{"data": {"main": [[{"json": {}}]]}}]}, None),
            ({"Other": [{"data": {"main": [[{"json": {}}]]}}]}, "Set"),
        ],
    )
    def test_missing_output_is_none(self, run_data, last_node):
        assert extract_workflow_output(self.run_result(run_data, last_node)) is None

    def test_node_names_are_not_case_converted(self):
        run_data = {"OpenAi": [{"data": {"main": [[{"json": {"ok": 1}}]]}}]}
        assert extract_workflow_output(self.run_result(run_data, "OpenAi")) == {"ok": 1}

    def test_no_result(self):
        assert extract_workflow_output(None) is None

    def test_workflow_error(self):
        result = {"data": {"resultData": {"error": {"message": "boom"}}}}
        assert extract_workflow_error(result) == {"message": "boom"}
        assert extract_workflow_error({"data": {"resultData": {}}}) is None


class TestUserMessage:
    def test_chat_input_first(self):
        assert extract_user_message({"prompt": "p", "chatInput": "c"}) == "c"

    def test_field_order(self):
        assert extract_user_message({"query": "q", "prompt": "p", "text": "t"}) == "t"
        assert extract_user_message({"query": "q", "prompt": "p"}) == "p"
        assert extract_user_message({"query": "q"}) == "q"

    def test_list_input_uses_first_record(self):
        assert extract_user_message([{"prompt": "first"}, {"prompt": "second"}]) == "first"

    def test_snake_case_alias(self):
        assert extract_user_message({"chat_input": "c"}) == "c"

    @pytest.mark.parametrize("node_input", [None, [], "text", {"other": 1}, {"prompt": ""}])
    def test_nothing_found(self, node_input):
        assert extract_user_message(node_input) is None

    def test_message_content(self):
        assert message_content("hi") == "hi"
        assert json.loads(message_content({"a": 1})) == {"a": 1}


class TestTruncation:
    def test_within_cap_is_unchanged(self):
        assert truncate_io("abcd", 4) == "abcd"

    @pytest.mark.parametrize("cap", [0, 1, 10, 100])
    @pytest.mark.parametrize("extra", [1, 2, 57, 1000])
    def test_over_cap_records_elided_count(self, cap, extra):
        value = "x" * (cap + extra)
        truncated = truncate_io(value, cap)
        assert truncated == "x" * cap + f"...[truncated {extra} chars]"

    def test_none_is_empty(self):
        assert truncate_io(None, 10) == ""

    def test_non_strings_are_stringified(self):
        assert truncate_io(12345, 3) == "123...[truncated 2 chars]"


class TestSerializePayload:
    def test_json_encoding(self):
        assert json.loads(serialize_payload({"prompt": "hi"}, 100)) == {"prompt": "hi"}

    def test_node_output_payload(self):
        payload = json.loads(serialize_payload(NodeOutput("hello", [{"response": "hello"}]), 1000))
        assert payload == {"primary": "hello", "items": [{"response": "hello"}]}

    def test_node_output_without_primary(self):
        payload = json.loads(serialize_payload(NodeOutput(None, [{"a": 1}]), 1000))
        assert payload == {"items": [{"a": 1}]}

    def test_unencodable_value_degrades(self):
        circular = {}
        circular["self"] = circular
        payload = json.loads(serialize_payload(circular, 1000))
        assert "_serializationError" in payload

    def test_unknown_types_are_stringified(self):
        class Opaque:
            def __str__(self):
                return "opaque"

        assert json.loads(serialize_payload({"value": Opaque()}, 100)) == {"value": "opaque"}

    def test_cap_applies_to_encoded_string(self):
        serialized = serialize_payload({"text": "y" * 50}, 20)
        assert serialized.startswith('{"text": "yyyyyyyyy')
        assert serialized.endswith("chars]")
        assert len(serialized.split("...[truncated")[0]) == 20
