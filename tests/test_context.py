"""Tests for context serialization and the runtime's decoder."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import pytest

from kiln import ContextError
from kiln.context import encode_context, to_context_value
from kiln.runtime.kiln_runtime import (
    ContextFormatError,
    ContextObject,
    decode_context,
    import_names,
)


class Kind(enum.Enum):
    CLASS = "class"
    PROTOCOL = "protocol"


@dataclass
class Method:
    name: str
    throws: bool = False


@dataclass
class Type:
    name: str
    kind: Kind
    methods: list[Method] = field(default_factory=list)


class Secret:
    def __init__(self, value: str):
        self.value = value

    def to_context(self):
        return {"masked": "*" * len(self.value)}


class TestToContextValue:
    """Host-side conversion to plain data."""

    def test_scalars(self) -> None:
        assert to_context_value({"a": 1, "b": 2.5, "c": None, "d": True, "e": "x"}) == {
            "a": 1,
            "b": 2.5,
            "c": None,
            "d": True,
            "e": "x",
        }

    def test_dataclasses_and_enums(self) -> None:
        value = Type("User", Kind.CLASS, [Method("save", throws=True)])
        assert to_context_value(value) == {
            "name": "User",
            "kind": "class",
            "methods": [{"name": "save", "throws": True}],
        }

    def test_protocol(self) -> None:
        assert to_context_value(Secret("abc")) == {"masked": "***"}

    def test_sets_sorted(self) -> None:
        assert to_context_value({3, 1, 2}) == [1, 2, 3]

    def test_tuples_and_paths(self) -> None:
        assert to_context_value((1, PurePosixPath("a/b"))) == [1, "a/b"]

    def test_non_string_key(self) -> None:
        with pytest.raises(ContextError, match="non-string key"):
            to_context_value({"types": {1: "x"}})

    def test_unsupported_value_names_its_path(self) -> None:
        with pytest.raises(ContextError) as exc_info:
            to_context_value({"types": [object()]})
        assert "context.types[0]" in exc_info.value.message

    def test_nan_rejected(self) -> None:
        with pytest.raises(ContextError):
            encode_context({"x": float("nan")})


class TestContextFormat:
    """The envelope shared by host and runtime."""

    def test_header(self) -> None:
        assert encode_context({}).startswith(b"KILNCTX 1\n")

    def test_runtime_reads_host_context(self) -> None:
        data = encode_context(
            {"name": "W\u00f6rld", "types": [Type("User", Kind.PROTOCOL, [Method("run")])]}
        )
        variables = decode_context(data)
        assert variables["name"] == "W\u00f6rld"
        user = variables["types"][0]
        assert isinstance(user, ContextObject)
        assert user.name == "User"
        assert user["kind"] == "protocol"
        assert user.methods[0].name == "run"
        assert user.methods[0].throws is False

    def test_fields_named_like_mapping_methods(self) -> None:
        variables = decode_context(
            encode_context({"order": {"items": [1, 2], "keys": "k", "get": "g"}})
        )
        order = variables["order"]
        assert order.items == [1, 2]
        assert order.keys == "k"
        assert order.get == "g"
        assert order["items"] == [1, 2]
        assert "items" in order
        assert list(order) == ["items", "keys", "get"]
        assert len(order) == 3
        assert order == {"items": [1, 2], "keys": "k", "get": "g"}

    def test_missing_attribute(self) -> None:
        variables = decode_context(encode_context({"obj": {"a": 1}}))
        with pytest.raises(AttributeError):
            _ = variables["obj"].missing

    def test_version_mismatch(self) -> None:
        data = encode_context({"x": 1}).replace(b"KILNCTX 1", b"KILNCTX 2", 1)
        with pytest.raises(ContextFormatError, match="version 2"):
            decode_context(data)

    def test_bad_magic(self) -> None:
        with pytest.raises(ContextFormatError):
            decode_context(b'{"x": 1}')

    def test_envelope_must_match_header(self) -> None:
        data = b'KILNCTX 1\n{"format": "other", "version": 1, "variables": {}}'
        with pytest.raises(ContextFormatError):
            decode_context(data)


class TestImportNames:
    """Binding imported helpers in generated programs."""

    def test_public_names(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "kiln_test_helpers_public.py").write_text(
            "import os\nVALUE = 1\n_hidden = 2\ndef shout(s):\n    return s.upper()\n"
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        names = import_names("kiln_test_helpers_public")
        assert names["VALUE"] == 1
        assert names["shout"]("a") == "A"
        assert "_hidden" not in names

    def test_dunder_all(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "kiln_test_helpers_all.py").write_text(
            "__all__ = ['A']\nA = 1\nB = 2\n"
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        assert import_names("kiln_test_helpers_all") == {"A": 1}
