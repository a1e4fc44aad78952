"""
efetch/utils/json_naming_converter.py

WHAT THIS FILE IS FOR
---------------------
This module owns the **JSON naming contract** of HttpFetchClient, in
both directions:

- OUTGOING (request bodies): every property name is lower-cased,
  recursively. `{"ItemName": "milk"}` is sent as `{"itemname": "milk"}`.
- INCOMING (response bodies): payload keys are matched to the target
  type's field names **case-insensitively**, then validated by pydantic.
  `{"ID": 7}` populates a field declared as `Id`, `id` or `ID`.

The two directions are deliberately NOT symmetric. Outgoing keys are
forced to one casing; incoming keys are accepted in any casing. Keep
them independent: unifying them changes what remote services receive.

CORE FUNCTIONALITY
------------------
- convert_keys_to_lower(obj):      recursive key lower-casing
- to_json_bytes(body):             body object -> lower-cased JSON bytes
- match_keys_case_insensitive():   rename payload keys to the target's
                                   declared field keys (models, dataclasses,
                                   and containers of them)
- parse_json_as(text, type):       raw body -> typed value

Supported body / target types:
- pydantic BaseModel subclasses
- dataclasses
- dict / list / tuple / primitives and typing containers of the above
- `str` or `object` as target returns the raw body unparsed
- `Any` as target returns the parsed JSON as-is

PRESERVE-CONTAINER MECHANISM
----------------------------
Free-form containers (e.g. a `metadata` dict whose inner keys are user
data) can be excluded from lower-casing via `preserve_container_keys`:

- the container key itself is lower-cased
- its child dictionary keys are preserved exactly as-is

WHAT THIS FILE IS NOT FOR
-------------------------
This module MUST NOT:
- Perform I/O or logging
- Translate errors into efetch error types (the client does that)

Parsing failures surface as ValueError subclasses
(json.JSONDecodeError, pydantic.ValidationError).
"""

from __future__ import annotations

import collections.abc
import dataclasses
import json
import types
import typing
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, TypeAdapter
from pydantic_core import PydanticSerializationError, to_jsonable_python

_SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.Iterable,
)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)
_UNION_ORIGINS = (Union, types.UnionType)


# ---------------------------------------------------------------------- #
# Outgoing
# ---------------------------------------------------------------------- #
def convert_keys_to_lower(
    obj: Any,
    *,
    preserve_container_keys: Optional[Iterable[str]] = None,
) -> Any:
    """
    Recursively lower-case dict keys.

    Args:
        obj:
            Any JSON-like object (dict / list / primitive)
        preserve_container_keys:
            Keys (matched case-insensitively) whose value dict keeps its
            inner keys unchanged. The container key itself is still
            lower-cased.

    Returns:
        New object with converted keys (input is not mutated)
    """
    preserve = {k.lower() for k in (preserve_container_keys or [])}

    # ---------- list ----------
    if isinstance(obj, list):
        return [
            convert_keys_to_lower(x, preserve_container_keys=preserve)
            for x in obj
        ]

    # ---------- dict ----------
    if isinstance(obj, dict):
        out: dict[Any, Any] = {}

        for key, value in obj.items():
            if not isinstance(key, str):
                out[key] = value
                continue

            lower_key = key.lower()

            if lower_key in preserve and isinstance(value, dict):
                out[lower_key] = value
            else:
                out[lower_key] = convert_keys_to_lower(
                    value, preserve_container_keys=preserve
                )

        return out

    # ---------- primitive ----------
    return obj


def to_json_bytes(
    body: Any,
    *,
    preserve_container_keys: Optional[Iterable[str]] = None,
) -> bytes:
    """
    Serialize a request body to compact UTF-8 JSON with lower-cased keys.

    pydantic models are dumped by alias before lower-casing, so an alias
    of "ItemName" is sent as "itemname".
    """
    try:
        plain = to_jsonable_python(body, by_alias=True)
    except PydanticSerializationError as exc:
        raise TypeError(f"Request body of type {type(body).__name__} is not JSON serializable") from exc

    lowered = convert_keys_to_lower(plain, preserve_container_keys=preserve_container_keys)
    return json.dumps(lowered, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


# ---------------------------------------------------------------------- #
# Incoming
# ---------------------------------------------------------------------- #
def _field_keys(target: Any) -> Optional[Dict[str, Tuple[str, Any]]]:
    """
    Map lower-cased field names/aliases -> (validation key, annotation).

    Returns None when `target` is not a structured type.
    """
    if not isinstance(target, type):
        return None

    if issubclass(target, BaseModel):
        keys: Dict[str, Tuple[str, Any]] = {}
        for name, info in target.model_fields.items():
            if isinstance(info.validation_alias, str):
                key = info.validation_alias
            else:
                key = info.alias or name
            keys[name.lower()] = (key, info.annotation)
            keys[key.lower()] = (key, info.annotation)
        return keys

    if dataclasses.is_dataclass(target):
        try:
            hints = typing.get_type_hints(target)
        except (NameError, TypeError):
            # unresolved forward references: match names, skip nested remapping
            hints = {}
        return {
            f.name.lower(): (f.name, hints.get(f.name, Any))
            for f in dataclasses.fields(target)
        }

    return None


def match_keys_case_insensitive(obj: Any, target_type: Any) -> Any:
    """
    Rename payload keys so they match the declared field keys of
    `target_type`, ignoring case. Recurses into nested models,
    dataclasses, sequences and mapping values.

    Keys with no matching field are passed through untouched; pydantic
    decides whether extras are allowed.
    """
    if target_type is None or target_type is Any:
        return obj

    origin = typing.get_origin(target_type)
    args = typing.get_args(target_type)

    if origin is typing.Annotated:
        return match_keys_case_insensitive(obj, args[0])

    if origin in _UNION_ORIGINS:
        for arg in args:
            if arg is type(None):
                continue
            arg_origin = typing.get_origin(arg)
            if isinstance(obj, dict) and (_field_keys(arg) is not None or arg_origin in _MAPPING_ORIGINS):
                return match_keys_case_insensitive(obj, arg)
            if isinstance(obj, list) and arg_origin in _SEQUENCE_ORIGINS:
                return match_keys_case_insensitive(obj, arg)
        return obj

    fields = _field_keys(target_type)
    if fields is not None:
        if not isinstance(obj, dict):
            return obj
        out: dict[Any, Any] = {}
        for key, value in obj.items():
            match = fields.get(key.lower()) if isinstance(key, str) else None
            if match is None:
                out[key] = value
                continue
            field_key, annotation = match
            out[field_key] = match_keys_case_insensitive(value, annotation)
        return out

    if isinstance(obj, list) and origin in _SEQUENCE_ORIGINS:
        if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
            head = [match_keys_case_insensitive(v, a) for v, a in zip(obj, args)]
            return head + obj[len(args):]
        item_type = args[0] if args else Any
        return [match_keys_case_insensitive(v, item_type) for v in obj]

    if isinstance(obj, dict) and origin in _MAPPING_ORIGINS:
        value_type = args[1] if len(args) == 2 else Any
        return {k: match_keys_case_insensitive(v, value_type) for k, v in obj.items()}

    return obj


@lru_cache(maxsize=128)
def _adapter(target_type: Any) -> TypeAdapter:
    return TypeAdapter(target_type)


def parse_json_as(text: str, response_type: Any = Any) -> Any:
    """
    Turn a raw response body into `response_type`.

    - str / object   -> raw text, unparsed
    - None/NoneType  -> None, body ignored
    - Any            -> parsed JSON; empty body -> None
    - anything else  -> parsed JSON, keys matched case-insensitively,
                        validated with pydantic

    Raises:
        json.JSONDecodeError / pydantic.ValidationError (both ValueError)
    """
    if response_type is str or response_type is object:
        return text

    if response_type is None or response_type is type(None):
        return None

    if response_type is Any:
        return json.loads(text) if text.strip() else None

    data = json.loads(text)
    data = match_keys_case_insensitive(data, response_type)
    return _adapter(response_type).validate_python(data)


__all__ = [
    "convert_keys_to_lower",
    "match_keys_case_insensitive",
    "parse_json_as",
    "to_json_bytes",
]
