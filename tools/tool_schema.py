# tools/tool_schema.py
from __future__ import annotations

from typing import Dict, Any, Tuple, List

# JSON-schema types we bother checking; anything else is passed through untouched
_PY_TYPES = {
    "string": (str,),
    "boolean": (bool,),
    "integer": (int,),
    "number": (int, float),
    "array": (list, tuple),
    "object": (dict,),
}


def _coerce(value: Any, typ: str | None) -> Any:
    """Models often send 10.0 for an integer field or "true" for a boolean; accept those."""
    if typ == "integer" and isinstance(value, float) and value.is_integer():
        return int(value)
    if typ == "integer" and isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    if typ == "boolean" and isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return value


def normalize_args(tool: str, args: Dict[str, Any] | None, schema: Dict[str, Any]) -> Tuple[bool, Dict[str, Any], str | None]:
    """
    Fill defaults, drop extraneous keys, check required and basic types.
    Returns (ok, fixed_args, error_message).
    """
    if args is None:
        args = {}
    if not isinstance(args, dict):
        return False, {}, f"Arguments for {tool} must be an object, got {type(args).__name__}"

    props: Dict[str, Any] = schema.get("properties") or {}
    fixed: Dict[str, Any] = {}
    for k, v in args.items():
        if k in props:
            fixed[k] = _coerce(v, (props[k] or {}).get("type"))
    # defaults declared in the schema
    for k, prop in props.items():
        if "default" in (prop or {}):
            fixed.setdefault(k, prop["default"])

    missing = [r for r in (schema.get("required") or []) if fixed.get(r) is None]
    if missing:
        return False, fixed, f"Missing required argument(s) for {tool}: {', '.join(missing)}"

    bad: List[str] = []
    for k, v in fixed.items():
        typ = (props.get(k) or {}).get("type")
        expected = _PY_TYPES.get(typ)
        if expected is None or v is None:
            continue
        # bool is an int subclass; don't let True pass as a number
        if isinstance(v, bool) and typ in {"integer", "number"}:
            bad.append(f"{k} (expected {typ})")
        elif not isinstance(v, expected):
            bad.append(f"{k} (expected {typ})")
    if bad:
        return False, fixed, f"Invalid argument type(s) for {tool}: {', '.join(bad)}"
    return True, fixed, None


def dropped_keys(args: Dict[str, Any] | None, schema: Dict[str, Any]) -> List[str]:
    props = schema.get("properties") or {}
    return sorted(k for k in (args or {}) if k not in props)
