from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, MutableMapping, MutableSequence
from typing import Any, Generic, TypeVar

from cwlbuilder.core.exception import NotFound, ValidationError
from cwlbuilder.core.utils import remove_empty
from cwlbuilder.cwl.expression import as_expression
from cwlbuilder.cwl.types import CWLType

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


def check_id(id: Any, kind: str = "parameter") -> str:
    if not isinstance(id, str) or not id:
        raise ValidationError(f"A {kind} id must be a non-empty string, got {id!r}")
    if not _ID_PATTERN.match(id):
        raise ValidationError(
            f"Invalid {kind} id `{id}`: ids cannot contain path separators, `#` or whitespace"
        )
    return id


def save_value(value: Any) -> Any:
    if isinstance(value, str):
        return str(value)
    elif isinstance(value, MutableSequence) or isinstance(value, tuple):
        return [save_value(v) for v in value]
    elif isinstance(value, MutableMapping):
        return {k: save_value(v) for k, v in value.items()}
    else:
        return value


class Parameter:
    __slots__ = ("id", "type", "label", "doc")

    def __init__(
        self,
        id: str,
        type: Any,
        label: str | None = None,
        doc: str | None = None,
    ):
        self.id: str = check_id(id)
        self.type: CWLType = CWLType.parse(type)
        self.label: str | None = label
        self.doc: str | None = doc

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, type={self.type})"

    def _save_base(self) -> MutableMapping[str, Any]:
        return {"type": self.type.save(), "label": self.label, "doc": self.doc}


class InputParam(Parameter):
    __slots__ = (
        "default",
        "bound",
        "prefix",
        "separate",
        "position",
        "item_separator",
        "value_from",
        "shell_quote",
    )

    def __init__(
        self,
        id: str,
        type: Any = "string",
        label: str | None = None,
        doc: str | None = None,
        default: Any | None = None,
        prefix: str | None = None,
        separate: bool = True,
        position: int | None = None,
        item_separator: str | None = None,
        value_from: str | None = None,
        shell_quote: bool | None = None,
        bound: bool = True,
    ):
        super().__init__(id, type, label, doc)
        if self.type.is_stream:
            raise ValidationError(
                f"Input `{self.id}` cannot have type `{self.type}`: it is reserved to outputs"
            )
        if position is not None and (
            isinstance(position, bool) or not isinstance(position, int)
        ):
            raise ValidationError(
                f"Input `{self.id}` position must be an integer, got {position!r}"
            )
        self.default: Any | None = (
            self.type.coerce(default, check_paths=False, where=f"Default of `{self.id}`")
            if default is not None
            else None
        )
        self.bound: bool = bound
        self.prefix: str | None = prefix
        self.separate: bool = separate
        self.position: int | None = position
        self.item_separator: str | None = item_separator
        self.value_from: str | None = as_expression(value_from)
        self.shell_quote: bool | None = shell_quote

    def copy(self, **kwargs) -> InputParam:
        params = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "doc": self.doc,
            "default": self.default,
            "prefix": self.prefix,
            "separate": self.separate,
            "position": self.position,
            "item_separator": self.item_separator,
            "value_from": self.value_from,
            "shell_quote": self.shell_quote,
            "bound": self.bound,
        }
        return InputParam(**(params | kwargs))

    def save(self, binding: bool = True) -> MutableMapping[str, Any]:
        record = remove_empty(self._save_base())
        if self.default is not None:
            record["default"] = save_value(self.default)
        if binding and self.bound:
            record["inputBinding"] = remove_empty(
                {
                    "position": self.position,
                    "prefix": self.prefix,
                    "separate": None if self.separate else False,
                    "itemSeparator": self.item_separator,
                    "valueFrom": save_value(self.value_from),
                    "shellQuote": self.shell_quote,
                }
            )
        return record


class OutputParam(Parameter):
    __slots__ = ("glob", "output_eval", "load_contents", "output_source", "link_merge")

    def __init__(
        self,
        id: str,
        type: Any = "File",
        label: str | None = None,
        doc: str | None = None,
        glob: str | MutableSequence[str] | None = None,
        output_eval: str | None = None,
        load_contents: bool = False,
        output_source: str | MutableSequence[str] | None = None,
        link_merge: str | None = None,
    ):
        super().__init__(id, type, label, doc)
        if isinstance(glob, (MutableSequence, tuple)):
            self.glob: str | MutableSequence[str] | None = [
                as_expression(g) for g in glob
            ]
        else:
            self.glob = as_expression(glob)
        self.output_eval: str | None = as_expression(output_eval)
        self.load_contents: bool = load_contents
        self.output_source: str | MutableSequence[str] | None = (
            list(output_source)
            if isinstance(output_source, (MutableSequence, tuple))
            else output_source
        )
        if link_merge not in (None, "merge_nested", "merge_flattened"):
            raise ValidationError(
                f"Invalid linkMerge `{link_merge}` for output `{self.id}`"
            )
        self.link_merge: str | None = link_merge

    @property
    def sources(self) -> MutableSequence[str]:
        if self.output_source is None:
            return []
        elif isinstance(self.output_source, str):
            return [self.output_source]
        else:
            return list(self.output_source)

    def save(self, workflow: bool = False) -> MutableMapping[str, Any]:
        record = self._save_base()
        if workflow:
            record["outputSource"] = save_value(self.output_source)
            record["linkMerge"] = self.link_merge
        elif not self.type.is_stream:
            record["outputBinding"] = remove_empty(
                {
                    "glob": save_value(self.glob),
                    "loadContents": self.load_contents or None,
                    "outputEval": save_value(self.output_eval),
                }
            )
        return remove_empty(record)


P = TypeVar("P", bound=Parameter)


class Parameters(Generic[P]):
    """Ordered collection of parameters with unique ids."""

    def __init__(self, params: Iterable[P] | None = None, kind: str = "input"):
        self.kind: str = kind
        self._params: MutableMapping[str, P] = {}
        for param in params or []:
            self.add(param)

    def __contains__(self, id: str) -> bool:
        return id in self._params

    def __getitem__(self, id: str) -> P:
        try:
            return self._params[id]
        except KeyError:
            raise NotFound(f"No {self.kind} parameter with id `{id}`") from None

    def __iter__(self) -> Iterator[P]:
        return iter(self._params.values())

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"Parameters({list(self._params.values())!r})"

    def add(self, param: P) -> None:
        if not isinstance(param, Parameter):
            raise ValidationError(
                f"Expected a parameter in the {self.kind} list, got {param!r}"
            )
        if param.id in self._params:
            raise ValidationError(
                f"Duplicate {self.kind} parameter id `{param.id}`"
            )
        self._params[param.id] = param

    def copy(self) -> Parameters[P]:
        return Parameters(self._params.values(), kind=self.kind)

    def get(self, id: str, default: P | None = None) -> P | None:
        return self._params.get(id, default)

    def ids(self) -> MutableSequence[str]:
        return list(self._params.keys())

    def remove(self, id: str) -> P:
        param = self[id]
        del self._params[id]
        return param

    def replace(self, param: P) -> None:
        self[param.id]
        self._params[param.id] = param

    def sorted(self) -> MutableSequence[P]:
        positioned = sorted(
            (p for p in self._params.values() if getattr(p, "position", None) is not None),
            key=lambda p: (p.position, p.id),
        )
        unpositioned = sorted(
            (p for p in self._params.values() if getattr(p, "position", None) is None),
            key=lambda p: p.id,
        )
        return positioned + unpositioned
