# adapters/stream_accumulator.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from messages import Message, ToolCall, new_tool_call_id


def candidate_parts(candidate: Any) -> Optional[List[Any]]:
    """`content.parts` of one Gemini candidate; None when the candidate is not shaped like one."""
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    if content is None:
        return []
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if parts is None:
        return []
    return parts if isinstance(parts, list) else None


def part_tool_call(part: Dict[str, Any]) -> Optional[ToolCall]:
    """A `functionCall` part as a ToolCall with a fresh id. A missing name is kept as "" so the
    registry reports it back to the model like any other unknown tool."""
    fc = part.get("functionCall")
    if not isinstance(fc, dict):
        return None
    args = fc.get("args")
    return ToolCall.create(str(fc.get("name") or ""), args if isinstance(args, dict) else {})


@dataclass
class _CallFragment:
    """A tool call being assembled from indexed stream fragments."""
    id: str = field(default_factory=new_tool_call_id)
    name: str = ""
    arguments: str = ""

    def to_tool_call(self) -> ToolCall:
        args: Dict[str, Any] = {}
        if self.arguments.strip():
            try:
                parsed = json.loads(self.arguments)
                args = parsed if isinstance(parsed, dict) else {"value": parsed}
            except json.JSONDecodeError:
                # arguments still arriving
                args = {}
        return ToolCall(id=self.id, name=self.name, arguments=args)


class StreamAccumulator:
    """
    Folds parsed stream objects into one growing assistant message.

    Two object shapes are understood:
      - Gemini: {"candidates":[{"content":{"parts":[{"text":..}, {"functionCall":{name,args}}]}}]}
        every functionCall part is a complete call and gets a fresh id;
      - chunked deltas: {"choices":[{"delta":{"content":..,"tool_calls":[{index,id,function:{name,arguments}}]}}]}
        fragments are keyed by `index`; `arguments` strings are concatenated and
        `id`/`name` are replaced only by non-empty values.
    `add()` returns the cumulative message when the object contributed anything.
    """

    def __init__(self):
        self.content = ""
        self._calls: List[ToolCall] = []
        self._fragments: Dict[int, _CallFragment] = {}
        self._fragment_order: List[int] = []
        self._last_emitted: Optional[Message] = None

    # ---------------- public ----------------

    def add(self, obj: Dict[str, Any]) -> Optional[Message]:
        if not isinstance(obj, dict):
            return None
        changed = False
        if "candidates" in obj:
            changed = self._add_gemini(obj)
        elif "choices" in obj:
            changed = self._add_delta(obj)
        elif "error" in obj:
            logger.warning("StreamAccumulator: error object in stream: {}", obj.get("error"))
        if not changed:
            return None
        return self._emit()

    def finish(self) -> Optional[Message]:
        """The final message, unless exactly this state was already emitted."""
        if not self.content and not self._calls and not self._fragments:
            return None
        snapshot = self.snapshot()
        if snapshot == self._last_emitted:
            return None
        self._last_emitted = snapshot
        return snapshot

    def snapshot(self) -> Message:
        calls = list(self._calls) + [self._fragments[i].to_tool_call() for i in self._fragment_order]
        return Message.assistant(content=self.content, tool_calls=calls)

    # ---------------- shapes ----------------

    def _add_gemini(self, obj: Dict[str, Any]) -> bool:
        candidates = obj.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return False
        parts = candidate_parts(candidates[0])
        if parts is None:
            logger.debug("StreamAccumulator: skipping malformed candidate: {}", str(candidates[0])[:200])
            return False
        changed = False
        for part in parts:
            if not isinstance(part, dict):
                logger.debug("StreamAccumulator: skipping non-object part: {}", str(part)[:200])
                continue
            text = part.get("text")
            if isinstance(text, str) and text:
                self.content += text
                changed = True
            call = part_tool_call(part)
            if call is not None:
                self._calls.append(call)
                changed = True
        return changed

    def _add_delta(self, obj: Dict[str, Any]) -> bool:
        choices = obj.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return False
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return False
        changed = False
        text = delta.get("content")
        if isinstance(text, str) and text:
            self.content += text
            changed = True
        for frag in delta.get("tool_calls") or []:
            index = frag.get("index") if isinstance(frag, dict) else None
            if index is None:
                continue
            current = self._fragments.get(index)
            if current is None:
                current = self._fragments[index] = _CallFragment()
                self._fragment_order.append(index)
            if frag.get("id"):
                current.id = frag["id"]
            fn = frag.get("function")
            fn = fn if isinstance(fn, dict) else {}
            if fn.get("name"):
                current.name = fn["name"]
            args = fn.get("arguments")
            if args:
                current.arguments += args if isinstance(args, str) else json.dumps(args)
            changed = True
        return changed

    def _emit(self) -> Message:
        self._last_emitted = self.snapshot()
        return self._last_emitted
