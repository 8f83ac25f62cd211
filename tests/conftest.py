"""Shared fixtures: scripted model adapters, fake HTTP responses, tool registries."""

import json
import os
import tempfile

# keep the app home (logs, .env, config.json) out of the real ~/.devpilot
os.environ.setdefault("DEVPILOT_HOME", tempfile.mkdtemp(prefix="devpilot-test-"))

import pytest
import requests
from unittest.mock import MagicMock

from errors import ToolExecutionError
from messages import Message, ToolCall
from models import ModelConfig
from tools.registry import Tool, ToolRegistry


# ═══════════════════════════════════════════════════════════════
# Fake HTTP
# ═══════════════════════════════════════════════════════════════

class FakeResponse:
    """Just enough of requests.Response for the adapter."""

    def __init__(self, status_code=200, body=None, chunks=None, text=None):
        self.status_code = status_code
        self._body = body
        self._chunks = list(chunks or [])
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")
        self.closed = False

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            yield chunk

    def close(self):
        self.closed = True


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def session():
    s = MagicMock(spec=requests.Session)
    s.headers = {}
    return s


# ═══════════════════════════════════════════════════════════════
# Config / adapters
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def config():
    return ModelConfig(api_key="test-key", greeting="")


class ScriptedAdapter:
    """Returns queued replies from send(); records every transcript it was given."""

    def __init__(self, config, replies=(), streams=()):
        self.config = config
        self.replies = list(replies)
        self.streams = list(streams)
        self.sent = []
        self.streamed = []

    def send(self, transcript, tools=None):
        self.sent.append(list(transcript))
        if not self.replies:
            return Message.assistant(content="(done)")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def send_stream(self, transcript, tools=None):
        self.streamed.append(list(transcript))
        for partial in self.streams.pop(0):
            yield partial


@pytest.fixture
def scripted_adapter(config):
    def make(replies=(), streams=(), cfg=None):
        return ScriptedAdapter(cfg or config, replies=replies, streams=streams)
    return make


# ═══════════════════════════════════════════════════════════════
# Tools
# ═══════════════════════════════════════════════════════════════

def make_tool(name, fn, required=("value",), props=None):
    properties = props or {k: {"type": "string"} for k in required}
    schema = {"type": "object", "properties": properties, "required": list(required)}
    return Tool(name=name, description=f"{name} tool", input_schema=schema, fn=fn)


class Flaky:
    """Tool function failing `failures` times with `message`, then returning `result`."""

    def __init__(self, failures, message="File not found: x.txt", result="ok", retryable=True):
        self.failures = failures
        self.message = message
        self.result = result
        self.retryable = retryable
        self.calls = 0

    def __call__(self, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise ToolExecutionError(self.message, retryable=self.retryable)
        return self.result


@pytest.fixture
def tool_factory():
    return make_tool


@pytest.fixture
def flaky():
    return Flaky


@pytest.fixture
def call():
    def make(name, **arguments):
        return ToolCall.create(name, arguments)
    return make


@pytest.fixture
def builtin_registry(tmp_path):
    return ToolRegistry.builtin(tmp_path)
