"""Tests for StreamAccumulator: folding parsed stream objects into one assistant message."""

from adapters.stream_accumulator import StreamAccumulator


def gemini(*parts):
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def delta(content=None, tool_calls=None):
    d = {}
    if content is not None:
        d["content"] = content
    if tool_calls is not None:
        d["tool_calls"] = tool_calls
    return {"choices": [{"delta": d}]}


class TestGeminiShape:

    def test_text_is_cumulative(self):
        acc = StreamAccumulator()
        first = acc.add(gemini({"text": "Hel"}))
        second = acc.add(gemini({"text": "lo"}))
        assert first.content == "Hel"
        assert second.content == "Hello"
        assert second.role == "assistant"

    def test_function_call_parts_become_tool_calls(self):
        acc = StreamAccumulator()
        acc.add(gemini({"text": "Let me look."}))
        msg = acc.add(gemini({"functionCall": {"name": "list_files", "args": {"path": "src"}}}))
        assert msg.content == "Let me look."
        assert [(tc.name, tc.arguments) for tc in msg.tool_calls] == [("list_files", {"path": "src"})]
        assert msg.tool_calls[0].id.startswith("call_")

    def test_two_calls_get_distinct_ids(self):
        acc = StreamAccumulator()
        msg = acc.add(gemini(
            {"functionCall": {"name": "read_file", "args": {"path": "a"}}},
            {"functionCall": {"name": "read_file", "args": {"path": "b"}}},
        ))
        assert len({tc.id for tc in msg.tool_calls}) == 2

    def test_object_without_contribution_yields_nothing(self):
        acc = StreamAccumulator()
        assert acc.add(gemini()) is None
        assert acc.add({"usageMetadata": {"totalTokenCount": 3}}) is None
        assert acc.add({"candidates": []}) is None

    def test_malformed_objects_are_skipped(self):
        acc = StreamAccumulator()
        assert acc.add({"candidates": ["x"]}) is None
        assert acc.add({"candidates": [{"content": "x"}]}) is None
        assert acc.add({"candidates": [{"content": {"parts": "x"}}]}) is None
        msg = acc.add(gemini("junk", {"text": "ok"}, 7))
        assert msg.content == "ok"
        assert acc.add({"choices": ["x"]}) is None
        assert acc.add({"choices": [{"delta": "x"}]}) is None

    def test_nameless_function_call_is_kept(self):
        msg = StreamAccumulator().add(gemini({"functionCall": {"args": {"path": "a"}}}))
        assert [(tc.name, tc.arguments) for tc in msg.tool_calls] == [("", {"path": "a"})]


class TestDeltaShape:

    def test_fragments_merge_by_index(self):
        acc = StreamAccumulator()
        acc.add(delta(tool_calls=[{"index": 0, "id": "t1", "function": {"name": "read_file", "arguments": '{"pa'}}]))
        acc.add(delta(tool_calls=[{"index": 0, "function": {"arguments": 'th": "x.py"}'}}]))
        msg = acc.finish() or acc.snapshot()
        assert len(msg.tool_calls) == 1
        tc = msg.tool_calls[0]
        assert (tc.id, tc.name, tc.arguments) == ("t1", "read_file", {"path": "x.py"})

    def test_empty_id_and_name_do_not_overwrite(self):
        acc = StreamAccumulator()
        acc.add(delta(tool_calls=[{"index": 0, "id": "t1", "function": {"name": "bash", "arguments": ""}}]))
        msg = acc.add(delta(tool_calls=[{"index": 0, "id": "", "function": {"name": "", "arguments": "{}"}}]))
        assert msg.tool_calls[0].id == "t1"
        assert msg.tool_calls[0].name == "bash"

    def test_partial_arguments_are_tolerated(self):
        acc = StreamAccumulator()
        msg = acc.add(delta(tool_calls=[{"index": 0, "id": "t1", "function": {"name": "bash", "arguments": '{"comm'}}]))
        assert msg.tool_calls[0].arguments == {}

    def test_calls_keep_first_seen_order(self):
        acc = StreamAccumulator()
        acc.add(delta(tool_calls=[{"index": 1, "id": "b", "function": {"name": "second"}}]))
        msg = acc.add(delta(tool_calls=[{"index": 0, "id": "a", "function": {"name": "first"}}]))
        assert [tc.id for tc in msg.tool_calls] == ["b", "a"]

    def test_content_deltas_append(self):
        acc = StreamAccumulator()
        acc.add(delta(content="foo"))
        assert acc.add(delta(content="bar")).content == "foobar"


class TestFinish:

    def test_nothing_received(self):
        assert StreamAccumulator().finish() is None

    def test_no_duplicate_final_snapshot(self):
        acc = StreamAccumulator()
        acc.add(gemini({"text": "done"}))
        assert acc.finish() is None

    def test_finish_emits_unseen_state(self):
        acc = StreamAccumulator()
        acc.add(gemini({"text": "a"}))
        acc.content += "b"
        final = acc.finish()
        assert final.content == "ab"
        assert acc.finish() is None
