# adapters/gemini.py
from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
from loguru import logger

from adapters.stream_accumulator import StreamAccumulator, candidate_parts, part_tool_call
from adapters.stream_parser import JsonObjectStream
from errors import TransportError
from messages import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_USER, Message
from models import ModelConfig
from tools.registry import Tool

_CONNECT_TIMEOUT_S = 10


def _model_path(model: str) -> str:
    model = (model or "").strip().strip("/")
    return model if model.startswith(("models/", "tunedModels/")) else f"models/{model}"


def _stream_timeout(limit: float) -> TransportError:
    return TransportError(f"Streaming error: stream exceeded {limit:g}s timeout")


def _upstream_message(resp: Any) -> str:
    """Best-effort `error.message` from an error body (object or streamed array)."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    text = (getattr(resp, "text", "") or "").strip()
    return text[:500] or f"HTTP {getattr(resp, 'status_code', '?')}"


class GeminiAdapter:
    """
    Chat transport for the Gemini REST API.
      - send(transcript, tools) -> Message             (generateContent)
      - send_stream(transcript, tools) -> Iterator     (streamGenerateContent)
      - list_models() -> [str]
    """

    def __init__(self, config: ModelConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        logger.info(
            "GeminiAdapter init → model='{}' base_url='{}' max_tokens={}",
            config.model, config.base_url, config.max_tokens,
        )

    # ---------------- serialization ----------------

    @staticmethod
    def contents(transcript: Sequence[Message]) -> List[Dict[str, Any]]:
        """
        One wire turn per message. The endpoint has no system role, so system
        text is folded into the first user message before anything else.
        """
        system_text = "\n\n".join(m.content for m in transcript if m.role == ROLE_SYSTEM and m.content)
        messages = [m for m in transcript if m.role != ROLE_SYSTEM]
        if system_text:
            first_user = next((i for i, m in enumerate(messages) if m.role == ROLE_USER), None)
            if first_user is None:
                messages.insert(0, Message.user(system_text))
            else:
                m = messages[first_user]
                merged = f"{system_text}\n\n{m.content}" if m.content else system_text
                messages[first_user] = Message(role=ROLE_USER, content=merged,
                                               tool_calls=m.tool_calls, tool_results=m.tool_results)

        names_by_id = {tc.id: tc.name for m in transcript for tc in m.tool_calls}
        out: List[Dict[str, Any]] = []
        for m in messages:
            parts: List[Dict[str, Any]] = []
            if m.content:
                parts.append({"text": m.content})
            for tc in m.tool_calls:
                parts.append({"text": f"Calling tool {tc.name} with arguments {json.dumps(tc.arguments, default=str)}"})
            for r in m.tool_results:
                label = names_by_id.get(r.tool_call_id, "tool")
                status = " (error)" if r.is_error else ""
                parts.append({"text": f"Tool result for {label} [{r.tool_call_id}]{status}:\n{r.content}"})
            if not parts:
                parts.append({"text": "(no content)"})
            out.append({"role": "model" if m.role == ROLE_ASSISTANT else "user", "parts": parts})
        return out

    @staticmethod
    def tool_declarations(tools: Optional[Sequence[Tool]]) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        return [{"functionDeclarations": [t.declaration() for t in tools]}]

    def payload(self, transcript: Sequence[Message], tools: Optional[Sequence[Tool]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": self.contents(transcript),
            "generationConfig": {"maxOutputTokens": self.config.max_tokens},
        }
        declarations = self.tool_declarations(tools)
        if declarations:
            body["tools"] = declarations
        return body

    # ---------------- parsing ----------------

    @staticmethod
    def parse_response(data: Any) -> Message:
        """First candidate only: text parts concatenated, each functionCall part one ToolCall."""
        if not isinstance(data, dict):
            raise TransportError("Gemini API error: malformed response body")
        candidates = data.get("candidates")
        if not candidates:
            feedback = data.get("promptFeedback")
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            detail = f" (blocked: {reason})" if reason else ""
            raise TransportError(f"Gemini API error: response contained no candidates{detail}")
        parts = candidate_parts(candidates[0]) if isinstance(candidates, list) else None
        if parts is None or not all(isinstance(p, dict) for p in parts):
            logger.error("parse_response: unexpected candidate shape: {}", str(candidates)[:500])
            raise TransportError("Gemini API error: malformed response body")
        text = "".join(p["text"] for p in parts if isinstance(p.get("text"), str))
        calls = [call for call in (part_tool_call(p) for p in parts) if call is not None]
        if not parts:
            logger.warning("parse_response: candidate without parts (finishReason={})",
                           candidates[0].get("finishReason"))
        return Message.assistant(content=text, tool_calls=calls)

    # ---------------- requests ----------------

    def _url(self, method: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{_model_path(self.config.model)}:{method}"

    def _params(self, **extra: str) -> Dict[str, str]:
        return {"key": self.config.api_key or "", **extra}

    def send(self, transcript: Sequence[Message], tools: Optional[Sequence[Tool]] = None) -> Message:
        url = self._url("generateContent")
        body = self.payload(transcript, tools)
        logger.info("gemini.send → model='{}' turns={} tools={}", self.config.model, len(body["contents"]), len(tools or []))
        logger.debug("gemini.send request body: {}", json.dumps(body)[:4000])

        t0 = time.time()
        try:
            resp = self.session.post(url, params=self._params(), json=body, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            logger.error("gemini.send ✗ network error: {}", e)
            raise TransportError(f"Gemini API error: {e}") from e
        dt = (time.time() - t0) * 1000.0
        logger.info("gemini.send ← status={} time_ms≈{:.0f}", resp.status_code, dt)

        try:
            resp.raise_for_status()
            data = resp.json()
        except requests.HTTPError as e:
            msg = _upstream_message(resp)
            logger.error("gemini.send: HTTP {} {}", resp.status_code, msg)
            raise TransportError(f"Gemini API error: {msg}", status_code=resp.status_code) from e
        except ValueError as e:
            logger.error("gemini.send: malformed JSON body: {}", e)
            raise TransportError("Gemini API error: malformed response body") from e

        logger.debug("gemini.send raw response: {}", json.dumps(data)[:4000])
        message = self.parse_response(data)
        logger.debug("gemini.send: content_len={} tool_calls={}", len(message.content), len(message.tool_calls))
        return message

    def send_stream(self, transcript: Sequence[Message], tools: Optional[Sequence[Tool]] = None) -> Iterator[Message]:
        """
        Yield the cumulative assistant message each time the stream adds text or
        tool calls. The whole stream is bounded by `config.stream_timeout`: a
        watchdog closes the response when the budget is spent, even while a read
        is blocked. The HTTP response is closed as soon as the caller stops iterating.
        """
        url = self._url("streamGenerateContent")
        body = self.payload(transcript, tools)
        limit = self.config.stream_timeout
        logger.info("gemini.send_stream → model='{}' turns={} timeout={}s", self.config.model, len(body["contents"]), limit)

        t0 = time.monotonic()
        deadline = t0 + limit
        try:
            resp = self.session.post(url, params=self._params(), json=body, stream=True,
                                     timeout=(_CONNECT_TIMEOUT_S, limit))
        except requests.RequestException as e:
            logger.error("gemini.send_stream ✗ network error: {}", e)
            raise TransportError(f"Streaming error: {e}") from e

        expired = threading.Event()

        def expire() -> None:
            expired.set()
            logger.error("gemini.send_stream ✗ exceeded {}s; closing response", limit)
            resp.close()

        watchdog = threading.Timer(max(0.0, deadline - time.monotonic()), expire)
        watchdog.daemon = True
        watchdog.start()
        try:
            try:
                resp.raise_for_status()
            except requests.HTTPError as e:
                msg = _upstream_message(resp)
                logger.error("gemini.send_stream ✗ status={} {}", resp.status_code, msg)
                raise TransportError(f"Streaming error: {msg}", status_code=resp.status_code) from e

            parser = JsonObjectStream()
            acc = StreamAccumulator()
            emitted = 0
            try:
                for chunk in resp.iter_content(chunk_size=None):
                    if expired.is_set() or time.monotonic() > deadline:
                        raise _stream_timeout(limit)
                    for obj in parser.feed(chunk):
                        message = self._accumulate(acc, obj)
                        if message is not None:
                            emitted += 1
                            yield message
                if expired.is_set():
                    raise _stream_timeout(limit)
                for obj in parser.close():
                    message = self._accumulate(acc, obj)
                    if message is not None:
                        emitted += 1
                        yield message
            except requests.RequestException as e:
                if expired.is_set():
                    raise _stream_timeout(limit) from e
                logger.error("gemini.send_stream ✗ {}", e)
                raise TransportError(f"Streaming error: {e}") from e
            except (AttributeError, ValueError, OSError) as e:
                # reading a response the watchdog closed underneath us
                if not expired.is_set():
                    raise
                raise _stream_timeout(limit) from e

            final = acc.finish()
            if final is not None:
                emitted += 1
                yield final
            logger.info(
                "gemini.send_stream ✓ updates={} skipped_objects={} time_ms≈{:.0f}",
                emitted, parser.skipped, (time.monotonic() - t0) * 1000.0,
            )
        finally:
            watchdog.cancel()
            resp.close()

    @staticmethod
    def _accumulate(acc: StreamAccumulator, obj: Dict[str, Any]) -> Optional[Message]:
        err = obj.get("error") if isinstance(obj, dict) else None
        if isinstance(err, dict):
            raise TransportError(f"Streaming error: {err.get('message') or err}", status_code=err.get("code"))
        return acc.add(obj)

    def list_models(self) -> List[str]:
        url = f"{self.config.base_url.rstrip('/')}/models"
        try:
            resp = self.session.get(url, params=self._params(), timeout=self.config.request_timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.HTTPError as e:
            raise TransportError(f"Failed to list models: {_upstream_message(resp)}", status_code=resp.status_code) from e
        except (requests.RequestException, ValueError) as e:
            raise TransportError(f"Failed to list models: {e}") from e
        names = [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]
        logger.info("list_models → {} model(s)", len(names))
        return names
