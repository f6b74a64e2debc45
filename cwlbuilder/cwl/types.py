from __future__ import annotations

import os
import re
from collections.abc import MutableMapping, MutableSequence
from typing import Any

from cwlbuilder.core.exception import TypeMismatch, ValidationError

PRIMITIVE_TYPES = (
    "null",
    "boolean",
    "int",
    "long",
    "float",
    "double",
    "string",
    "File",
    "Directory",
    "Any",
)
STREAM_TYPES = ("stdout", "stderr")

_TYPE_GRAMMAR = re.compile(
    r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?P<arrays>(?:\[\])*)(?P<optional>\?)?$"
)


def _strip_namespace(name: str) -> str:
    return name.split("#")[-1].split("/")[-1]


class CWLType:
    """
    Normalised representation of a CWL type.

    Both the compact notation (``File``, ``File[]``, ``string?``, ``int[][]?``) and the explicit
    descriptor notation (``{"type": "array", "items": "File"}``, ``["null", "string"]``) are
    parsed into the same structure, which is then saved back in the most compact valid form.
    """

    __slots__ = ("name", "items", "fields", "symbols", "optional")

    def __init__(
        self,
        name: str,
        items: CWLType | None = None,
        fields: MutableMapping[str, CWLType] | None = None,
        symbols: MutableSequence[str] | None = None,
        optional: bool = False,
    ):
        self.name: str = name
        self.items: CWLType | None = items
        self.fields: MutableMapping[str, CWLType] | None = fields
        self.symbols: MutableSequence[str] | None = symbols
        self.optional: bool = optional

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CWLType):
            return NotImplemented
        return (
            self.name == other.name
            and self.items == other.items
            and self.fields == other.fields
            and self.symbols == other.symbols
            and self.optional == other.optional
        )

    def __repr__(self) -> str:
        return f"CWLType({self.save()!r})"

    @classmethod
    def parse(cls, spec: Any) -> CWLType:
        if isinstance(spec, CWLType):
            return spec
        elif isinstance(spec, str):
            return cls._parse_string(spec)
        elif isinstance(spec, MutableSequence):
            types = [t for t in spec if t != "null"]
            if len(types) != 1:
                raise ValidationError(
                    f"Unsupported union type {list(spec)}: only `[null, T]` unions are allowed"
                )
            parsed = cls.parse(types[0])
            return parsed.as_optional() if len(types) < len(spec) else parsed
        elif isinstance(spec, MutableMapping):
            return cls._parse_descriptor(spec)
        else:
            raise ValidationError(f"Invalid type specification {spec!r}")

    @classmethod
    def _parse_descriptor(cls, spec: MutableMapping[str, Any]) -> CWLType:
        match spec.get("type"):
            case "array":
                if "items" not in spec:
                    raise ValidationError("Array type descriptors require `items`")
                return CWLType("array", items=cls.parse(spec["items"]))
            case "record":
                fields = spec.get("fields", [])
                if isinstance(fields, MutableMapping):
                    fields = [{"name": k, "type": v} for k, v in fields.items()]
                parsed = {}
                for field in fields:
                    if "name" not in field or "type" not in field:
                        raise ValidationError(
                            f"Record field {field!r} must declare `name` and `type`"
                        )
                    name = _strip_namespace(field["name"])
                    if name in parsed:
                        raise ValidationError(f"Duplicate record field `{name}`")
                    parsed[name] = cls.parse(field["type"])
                return CWLType("record", fields=parsed)
            case "enum":
                if not (symbols := spec.get("symbols")):
                    raise ValidationError("Enum type descriptors require `symbols`")
                return CWLType("enum", symbols=[_strip_namespace(s) for s in symbols])
            case str() as name if name in PRIMITIVE_TYPES or name in STREAM_TYPES:
                return CWLType(name)
            case other:
                raise ValidationError(f"Unsupported type descriptor `{other}`")

    @classmethod
    def _parse_string(cls, spec: str) -> CWLType:
        if (match := _TYPE_GRAMMAR.match(spec.strip())) is None:
            raise ValidationError(f"Malformed type string `{spec}`")
        name = match.group("name")
        if name not in PRIMITIVE_TYPES and name not in STREAM_TYPES:
            raise ValidationError(f"Unknown type `{name}` in type string `{spec}`")
        parsed = CWLType(name)
        for _ in range(len(match.group("arrays")) // 2):
            if parsed.name in STREAM_TYPES:
                raise ValidationError(f"Type `{parsed.name}` cannot be an array item")
            parsed = CWLType("array", items=parsed)
        if match.group("optional"):
            parsed = parsed.as_optional()
        return parsed

    def as_optional(self) -> CWLType:
        return CWLType(
            name=self.name,
            items=self.items,
            fields=self.fields,
            symbols=self.symbols,
            optional=True,
        )

    def coerce(self, value: Any, check_paths: bool = True, where: str = "value") -> Any:
        if value is None:
            if self.optional or self.name in ("null", "Any"):
                return None
            raise TypeMismatch(f"{where} cannot be null: expected type `{self}`")
        match self.name:
            case "Any":
                return value
            case "null":
                raise TypeMismatch(f"{where} must be null, got {value!r}")
            case "boolean":
                if isinstance(value, bool):
                    return value
            case "int" | "long":
                if isinstance(value, int) and not isinstance(value, bool):
                    return value
            case "float" | "double":
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    return value
            case "string":
                if isinstance(value, str):
                    return str(value)
            case "File" | "Directory":
                return self._coerce_path(value, check_paths, where)
            case "array":
                if isinstance(value, (MutableSequence, tuple)):
                    return [
                        self.items.coerce(v, check_paths, f"{where}[{i}]")
                        for i, v in enumerate(value)
                    ]
            case "record":
                if isinstance(value, MutableMapping):
                    if unknown := set(value.keys()) - set(self.fields.keys()):
                        raise TypeMismatch(
                            f"{where} has unknown record fields {sorted(unknown)}"
                        )
                    return {
                        k: t.coerce(value.get(k), check_paths, f"{where}.{k}")
                        for k, t in self.fields.items()
                        if k in value or not t.optional
                    }
            case "enum":
                if isinstance(value, str) and value in self.symbols:
                    return value
            case "stdout" | "stderr":
                raise TypeMismatch(f"{where}: `{self.name}` outputs cannot be bound")
        raise TypeMismatch(f"{where} is not compatible with type `{self}`: {value!r}")

    def _coerce_path(self, value: Any, check_paths: bool, where: str) -> Any:
        if isinstance(value, MutableMapping):
            if value.get("class") != self.name:
                raise TypeMismatch(
                    f"{where} must be a `{self.name}` object, got class `{value.get('class')}`"
                )
            return dict(value)
        elif isinstance(value, (str, os.PathLike)):
            path = os.fspath(value)
            if check_paths:
                exists = (
                    os.path.isfile(path)
                    if self.name == "File"
                    else os.path.isdir(path)
                )
                if not exists:
                    raise TypeMismatch(
                        f"{where}: {self.name} `{path}` does not exist"
                    )
                path = os.path.abspath(path)
            return {"class": self.name, "path": path}
        else:
            raise TypeMismatch(
                f"{where} is not compatible with type `{self}`: {value!r}"
            )

    @property
    def is_array(self) -> bool:
        return self.name == "array"

    @property
    def is_stream(self) -> bool:
        return self.name in STREAM_TYPES

    def save(self) -> Any:
        saved = self._save_required()
        if self.optional:
            return f"{saved}?" if isinstance(saved, str) else ["null", saved]
        return saved

    def _save_required(self) -> Any:
        match self.name:
            case "array":
                items = self.items.save()
                if isinstance(items, str) and not self.items.optional:
                    return f"{items}[]"
                return {"type": "array", "items": items}
            case "record":
                return {
                    "type": "record",
                    "fields": [
                        {"name": name, "type": t.save()}
                        for name, t in self.fields.items()
                    ],
                }
            case "enum":
                return {"type": "enum", "symbols": list(self.symbols)}
            case _:
                return self.name

    def __str__(self) -> str:
        saved = self.save()
        return saved if isinstance(saved, str) else repr(saved)
