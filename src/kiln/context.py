"""Render context serialization (host side).

The context is handed to the built program through a file, in the format
read by ``kiln_runtime.decode_context``. The format is versioned: host and
runtime must agree on ``CONTEXT_VERSION``, and the runtime refuses any
other version.

Supported values:
- ``None``, ``bool``, ``int``, ``float``, ``str``
- mappings with string keys (become attribute-accessible objects)
- lists, tuples, sets and frozensets (become lists; sets are sorted)
- dataclass instances (their fields, recursively)
- enum members (their value)
- ``pathlib.PurePath`` (its string form)
- anything implementing ``ContextSerializable``

Example:
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Method:
    ...     name: str
    ...     throws: bool = False
    >>> encode_context({"methods": [Method("run")]})[:10]
    b'KILNCTX 1\\n'

"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Protocol, runtime_checkable

from kiln.environment.exceptions import ContextError
from kiln.runtime.kiln_runtime import (
    CONTEXT_FORMAT,
    CONTEXT_MAGIC,
    CONTEXT_VERSION,
)

__all__ = [
    "CONTEXT_VERSION",
    "ContextSerializable",
    "dump_context",
    "encode_context",
    "to_context_value",
]


@runtime_checkable
class ContextSerializable(Protocol):
    """A value that knows how to describe itself to a template.

    ``to_context()`` returns any supported value (typically a dict of the
    members a template is allowed to see).
    """

    def to_context(self) -> Any: ...


def to_context_value(value: Any, *, _path: str = "context") -> Any:
    """Convert ``value`` into plain JSON-compatible data.

    Raises:
        ContextError: The value (or something inside it) is not supported.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return to_context_value(value.value, _path=_path)
    if isinstance(value, ContextSerializable):
        return to_context_value(value.to_context(), _path=_path)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_context_value(getattr(value, f.name), _path=f"{_path}.{f.name}")
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ContextError(
                    f"{_path} has a non-string key {key!r} ({type(key).__name__})"
                )
            result[key] = to_context_value(item, _path=f"{_path}.{key}")
        return result
    if isinstance(value, (set, frozenset)):
        items = [to_context_value(item, _path=f"{_path}[]") for item in value]
        try:
            return sorted(items)
        except TypeError:
            return items
    if isinstance(value, (list, tuple)):
        return [to_context_value(item, _path=f"{_path}[{i}]") for i, item in enumerate(value)]
    if isinstance(value, PurePath):
        return str(value)
    raise ContextError(
        f"{_path} = {value!r} ({type(value).__name__}) cannot be passed to a template; "
        "implement to_context() or convert it to plain data"
    )


def encode_context(variables: Mapping[str, Any]) -> bytes:
    """Serialize template variables into the versioned context format."""
    envelope = {
        "format": CONTEXT_FORMAT,
        "version": CONTEXT_VERSION,
        "variables": to_context_value(variables),
    }
    try:
        payload = json.dumps(envelope, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (ValueError, UnicodeEncodeError) as e:
        raise ContextError(f"context cannot be encoded: {e}") from e
    header = CONTEXT_MAGIC + b" " + str(CONTEXT_VERSION).encode() + b"\n"
    return header + payload


def dump_context(variables: Mapping[str, Any], path: str | Path) -> Path:
    """Write serialized variables to ``path``."""
    path = Path(path)
    path.write_bytes(encode_context(variables))
    return path
