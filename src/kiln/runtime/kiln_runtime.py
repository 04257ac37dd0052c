"""Runtime support for programs generated by Kiln.

This module is copied next to every built program (it is the "runtime
support file" of a build) and imported by the generated ``main`` module.
It only depends on the standard library because it runs inside the built
program, not inside the host process.

Context Format (version 1):
    ```
    KILNCTX 1\\n
    {"format": "kiln-context", "version": 1, "variables": {...}}
    ```

The host writes this with ``kiln.context.dump_context``; both sides must
agree on ``CONTEXT_VERSION``.

"""

from __future__ import annotations

import importlib
import json
import logging
import sys
from typing import Any

CONTEXT_FORMAT = "kiln-context"
CONTEXT_VERSION = 1
CONTEXT_MAGIC = b"KILNCTX"

_log = logging.getLogger("kiln_runtime")


class ContextFormatError(Exception):
    """The context file is not a context this runtime can read."""


class ContextObject:
    """Object from the context, read by attribute or by key.

    ``type.name`` and ``type["name"]`` are equivalent in templates. Fields
    named like mapping methods (``items``, ``keys``, ``get``) resolve to the
    data. Iterating yields the field names.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Any = ()):
        object.__setattr__(self, "_fields", dict(fields))

    def __getattr__(self, name: str) -> Any:
        if name == "_fields":
            # Not initialised yet (copy, pickle)
            raise AttributeError(name)
        try:
            return self._fields[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._fields[name] = value

    def __getitem__(self, name: str) -> Any:
        return self._fields[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._fields[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self):
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ContextObject):
            return self._fields == other._fields
        if isinstance(other, dict):
            return self._fields == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ContextObject({self._fields!r})"


def _wrap(value: Any) -> Any:
    if isinstance(value, dict):
        return ContextObject((key, _wrap(item)) for key, item in value.items())
    if isinstance(value, list):
        return [_wrap(item) for item in value]
    return value


def decode_context(data: bytes) -> dict[str, Any]:
    """Decode a serialized context into template variables.

    Raises:
        ContextFormatError: Bad magic line, unknown format or version.
    """
    header, _, payload = data.partition(b"\n")
    magic, _, version = header.partition(b" ")
    if magic != CONTEXT_MAGIC:
        raise ContextFormatError("Not a Kiln context file")
    if version != str(CONTEXT_VERSION).encode():
        raise ContextFormatError(
            f"Context version {version.decode(errors='replace')} is not supported "
            f"(runtime speaks version {CONTEXT_VERSION})"
        )

    envelope = json.loads(payload.decode("utf-8"))
    if envelope.get("format") != CONTEXT_FORMAT or envelope.get("version") != CONTEXT_VERSION:
        raise ContextFormatError("Context envelope does not match its header")

    variables = envelope.get("variables", {})
    return {name: _wrap(value) for name, value in variables.items()}


def load_context(path: str) -> dict[str, Any]:
    """Read and decode the context file written by the host.

    Also prepares the standard streams of the generated program.
    """
    _configure()
    with open(path, "rb") as f:
        return decode_context(f.read())


def import_names(module_name: str) -> dict[str, Any]:
    """Public names of an imported source file, as ``import *`` would bind them."""
    module = importlib.import_module(module_name)
    names = getattr(module, "__all__", None)
    if names is None:
        names = [name for name in vars(module) if not name.startswith("_")]
    return {name: getattr(module, name) for name in names}


def text(value: Any) -> str:
    """Textual representation used by ``<%= expr %>``."""
    return str(value)


def write(value: str) -> None:
    sys.stdout.write(value)


class Log:
    """Error reporting for generated programs.

    Anything written here ends up on stderr, which the host treats as a
    render failure.
    """

    @staticmethod
    def error(error: BaseException | str) -> None:
        _log.error("%s", error if isinstance(error, str) else f"{type(error).__name__}: {error}")


def _configure() -> None:
    # Byte-exact output regardless of locale or platform newline convention
    sys.stdout.reconfigure(encoding="utf-8", newline="\n")
    sys.stderr.reconfigure(encoding="utf-8", newline="\n")

    if not _log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("error: %(message)s"))
        _log.addHandler(handler)
        _log.propagate = False

