"""Tests for the incremental JSON object lexer used by the streaming transport."""

import json

import pytest

from adapters.stream_parser import JsonObjectStream, iter_json_objects, parse_all


def chunked(text, size):
    return [text[i:i + size] for i in range(0, len(text), size)]


# ═══════════════════════════════════════════════════════════════
# Framing
# ═══════════════════════════════════════════════════════════════

class TestFraming:

    def test_gemini_array_framing(self):
        body = '[{"a": 1}\n,\r\n{"b": 2}\n,\r\n{"c": 3}\n]'
        assert parse_all([body]) == [{"a": 1}, {"b": 2}, {"c": 3}]

    def test_sse_framing(self):
        body = 'data: {"a": 1}\n\ndata: {"b": {"c": 2}}\n\n'
        assert parse_all([body]) == [{"a": 1}, {"b": {"c": 2}}]

    def test_nested_objects_yield_only_top_level(self):
        assert parse_all(['{"outer": {"inner": {"x": 1}}}']) == [{"outer": {"inner": {"x": 1}}}]

    @pytest.mark.parametrize("size", [1, 2, 3, 7])
    def test_any_chunking_gives_same_objects(self, size):
        objs = [{"text": "hello {world}"}, {"n": [1, 2, {"deep": "}"}]}, {"q": "say \"hi\""}]
        body = "[" + ",".join(json.dumps(o) for o in objs) + "]"
        assert parse_all(chunked(body, size)) == objs


# ═══════════════════════════════════════════════════════════════
# String awareness
# ═══════════════════════════════════════════════════════════════

class TestStrings:

    def test_braces_inside_strings_are_not_counted(self):
        assert parse_all(['{"code": "if (x) { return \'}\'; }"}']) == [{"code": "if (x) { return '}'; }"}]

    def test_escaped_quote_does_not_end_string(self):
        raw = r'{"s": "a \" } b"}'
        assert parse_all([raw]) == [{"s": 'a " } b'}]

    def test_escaped_backslash_before_quote(self):
        raw = r'{"s": "dir\\"}'
        assert parse_all([raw]) == [{"s": "dir\\"}]

    def test_object_split_mid_string(self):
        stream = JsonObjectStream()
        assert list(stream.feed('{"t":"a')) == []
        assert stream.pending
        assert list(stream.feed('b"}')) == [{"t": "ab"}]
        assert not stream.pending

    def test_split_right_after_backslash(self):
        stream = JsonObjectStream()
        assert list(stream.feed('{"t":"x\\')) == []
        assert list(stream.feed('"}"}')) == [{"t": 'x"}'}]


# ═══════════════════════════════════════════════════════════════
# Bytes & decoding
# ═══════════════════════════════════════════════════════════════

class TestDecoding:

    def test_utf8_sequence_split_across_chunks(self):
        data = json.dumps({"t": "héllo ✓"}, ensure_ascii=False).encode("utf-8")
        cut = data.index("✓".encode("utf-8")) + 1
        assert parse_all([data[:cut], data[cut:]]) == [{"t": "héllo ✓"}]

    def test_byte_at_a_time(self):
        data = json.dumps({"emoji": "🚀🚀"}, ensure_ascii=False).encode("utf-8")
        assert parse_all([data[i:i + 1] for i in range(len(data))]) == [{"emoji": "🚀🚀"}]


# ═══════════════════════════════════════════════════════════════
# Malformed input
# ═══════════════════════════════════════════════════════════════

class TestMalformed:

    def test_malformed_object_is_skipped(self):
        stream = JsonObjectStream()
        out = list(stream.feed('{"a": 1}{"b": nope}{"c": 3}'))
        assert out == [{"a": 1}, {"c": 3}]
        assert stream.skipped == 1

    def test_incomplete_object_discarded_on_close(self):
        stream = JsonObjectStream()
        assert list(stream.feed('{"a": 1}{"b": ')) == [{"a": 1}]
        assert list(stream.close()) == []
        assert not stream.pending

    def test_buffer_does_not_grow_with_separators(self):
        stream = JsonObjectStream()
        list(stream.feed('{"a": 1}\n,\n   '))
        assert stream.buffer == ""

    def test_consumer_can_stop_early(self):
        stream = JsonObjectStream()
        gen = stream.feed('{"a": 1}{"b": 2}')
        assert next(gen) == {"a": 1}
        gen.close()
        assert list(stream.feed("")) == [{"b": 2}]

    def test_iter_json_objects_is_lazy(self):
        seen = []

        def chunks():
            seen.append(1)
            yield '{"a": 1}'
            seen.append(2)
            yield '{"b": 2}'

        it = iter_json_objects(chunks())
        assert next(it) == {"a": 1}
        assert seen == [1]
