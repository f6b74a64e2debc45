from __future__ import annotations

import logging
from collections.abc import Iterable, MutableMapping, MutableSequence
from typing import Any

from cwlbuilder.core.exception import EmissionError, NotFound, ValidationError
from cwlbuilder.core.utils import remove_empty
from cwlbuilder.cwl.expression import as_expression, get_dependencies
from cwlbuilder.cwl.parameter import (
    InputParam,
    OutputParam,
    Parameters,
    save_value,
    check_id,
)
from cwlbuilder.cwl.requirement import Requirement, Requirements
from cwlbuilder.cwl.script import FunctionCommand
from cwlbuilder.log_handler import logger

CWL_VERSIONS = ("v1.0", "v1.1", "v1.2")
STDOUT_OUTPUT = "output"


def _as_requirements(
    requirements: Requirements | Iterable[Requirement | MutableMapping[str, Any]] | None,
) -> Requirements:
    if isinstance(requirements, Requirements):
        return requirements
    return Requirements(
        r if isinstance(r, Requirement) else Requirement.load(r)
        for r in requirements or []
    )


class Argument:
    """A command line token not tied to any input parameter."""

    __slots__ = ("value_from", "prefix", "position", "separate", "shell_quote")

    def __init__(
        self,
        value_from: str | None = None,
        prefix: str | None = None,
        position: int | None = None,
        separate: bool = True,
        shell_quote: bool | None = None,
    ):
        if value_from is None and prefix is None:
            raise ValidationError("An argument requires either `value_from` or `prefix`")
        self.value_from: str | None = as_expression(value_from)
        self.prefix: str | None = prefix
        self.position: int | None = position
        self.separate: bool = separate
        self.shell_quote: bool | None = shell_quote

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Argument):
            return NotImplemented
        return self.save() == other.save()

    def __repr__(self) -> str:
        return f"Argument({self.save()!r})"

    @classmethod
    def load(cls, record: MutableMapping[str, Any]) -> Argument:
        return cls(
            value_from=record.get("valueFrom"),
            prefix=record.get("prefix"),
            position=record.get("position"),
            separate=record.get("separate", True),
            shell_quote=record.get("shellQuote"),
        )

    def save(self) -> MutableMapping[str, Any]:
        return remove_empty(
            {
                "position": self.position,
                "prefix": self.prefix,
                "separate": None if self.separate else False,
                "valueFrom": save_value(self.value_from),
                "shellQuote": self.shell_quote,
            }
        )


class Meta:
    """
    Descriptive annotations of a process.

    ``inputs``, ``outputs`` and ``steps`` map ids to ``{"label": ..., "doc": ...}`` records, which
    fill the corresponding fields of the emitted document when the annotated object has none.
    ``extensions`` holds extra top-level fields (e.g. ``$namespaces`` or ``s:author``).
    """

    __slots__ = ("label", "doc", "inputs", "outputs", "steps", "extensions")

    def __init__(
        self,
        label: str | None = None,
        doc: str | None = None,
        inputs: MutableMapping[str, MutableMapping[str, str]] | None = None,
        outputs: MutableMapping[str, MutableMapping[str, str]] | None = None,
        steps: MutableMapping[str, MutableMapping[str, str]] | None = None,
        extensions: MutableMapping[str, Any] | None = None,
    ):
        self.label: str | None = label
        self.doc: str | None = doc
        self.inputs: MutableMapping[str, MutableMapping[str, str]] = dict(inputs or {})
        self.outputs: MutableMapping[str, MutableMapping[str, str]] = dict(
            outputs or {}
        )
        self.steps: MutableMapping[str, MutableMapping[str, str]] = dict(steps or {})
        self.extensions: MutableMapping[str, Any] = dict(extensions or {})

    def copy(self) -> Meta:
        return Meta(
            label=self.label,
            doc=self.doc,
            inputs=self.inputs,
            outputs=self.outputs,
            steps=self.steps,
            extensions=self.extensions,
        )

    def describe(
        self, kind: str, id: str, known: Iterable[str]
    ) -> MutableMapping[str, str]:
        entries = getattr(self, kind)
        if unknown := sorted(set(entries.keys()) - set(known)):
            raise EmissionError(
                f"Annotations for unknown {kind} {unknown}: no such id in the process"
            )
        return entries.get(id, {})


class AbstractProcess:
    class_name: str = ""

    def __init__(
        self,
        id: str | None = None,
        inputs: Iterable[InputParam] | None = None,
        outputs: Iterable[OutputParam] | None = None,
        requirements: Iterable[Requirement] | None = None,
        hints: Iterable[Requirement] | None = None,
        label: str | None = None,
        doc: str | None = None,
        meta: Meta | None = None,
        cwl_version: str = "v1.0",
    ):
        self.id: str | None = check_id(id, "process") if id is not None else None
        self.inputs: Parameters[InputParam] = Parameters(inputs, kind="input")
        self.outputs: Parameters[OutputParam] = Parameters(outputs, kind="output")
        self.requirements: Requirements = _as_requirements(requirements)
        self.hints: Requirements = _as_requirements(hints)
        self.meta: Meta = meta or Meta()
        if label is not None:
            self.meta.label = label
        if doc is not None:
            self.meta.doc = doc
        if cwl_version not in CWL_VERSIONS:
            raise ValidationError(
                f"Unsupported CWL version `{cwl_version}`: expected one of {CWL_VERSIONS}"
            )
        self.cwl_version: str = cwl_version
        self._values: MutableMapping[str, Any] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r})"

    @property
    def doc(self) -> str | None:
        return self.meta.doc

    @doc.setter
    def doc(self, value: str | None) -> None:
        self.meta.doc = value

    @property
    def label(self) -> str | None:
        return self.meta.label

    @label.setter
    def label(self, value: str | None) -> None:
        self.meta.label = value

    @property
    def values(self) -> MutableMapping[str, Any]:
        return {
            p.id: save_value(self._values[p.id])
            for p in self.inputs.sorted()
            if p.id in self._values
        }

    def add_hint(self, hint: Requirement) -> None:
        self.hints.add(hint)

    def add_requirement(self, requirement: Requirement) -> None:
        self.requirements.add(requirement)

    def clear_values(self) -> None:
        self._values.clear()

    def copy(self) -> AbstractProcess:
        raise NotImplementedError

    def output_ids(self) -> MutableSequence[str]:
        return self.outputs.ids()

    def get_value(self, id: str) -> Any:
        param = self.inputs[id]
        return self._values.get(param.id, param.default)

    def set_value(self, id: str, value: Any) -> None:
        """Bind a run time value to the input ``id``, checking it against the declared type."""
        try:
            param = self.inputs[id]
        except NotFound:
            raise NotFound(
                f"Process `{self.id}` has no input `{id}`: "
                f"declared inputs are {self.inputs.ids()}"
            ) from None
        self._values[id] = param.type.coerce(value, where=f"Value of input `{id}`")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Bound input `{id}` of process `{self.id}`")

    def set_values(self, values: MutableMapping[str, Any]) -> None:
        for id, value in values.items():
            self.set_value(id, value)

    def unset_value(self, id: str) -> None:
        if id not in self._values:
            raise NotFound(f"Input `{id}` of process `{self.id}` has no bound value")
        del self._values[id]

    def validate(self) -> None:
        raise NotImplementedError


class Process(AbstractProcess):
    """A ``CommandLineTool`` description."""

    class_name = "CommandLineTool"

    def __init__(
        self,
        id: str | None = None,
        base_command: str | MutableSequence[str] | FunctionCommand | None = None,
        arguments: Iterable[str | Argument] | None = None,
        inputs: Iterable[InputParam] | None = None,
        outputs: Iterable[OutputParam] | None = None,
        requirements: Iterable[Requirement] | None = None,
        hints: Iterable[Requirement] | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        label: str | None = None,
        doc: str | None = None,
        meta: Meta | None = None,
        cwl_version: str = "v1.0",
    ):
        super().__init__(
            id=id,
            inputs=inputs,
            outputs=outputs,
            requirements=requirements,
            hints=hints,
            label=label,
            doc=doc,
            meta=meta,
            cwl_version=cwl_version,
        )
        self._base_command = self._check_base_command(base_command)
        self._arguments = self._check_arguments(arguments)
        self._stdout: str | None = as_expression(stdout)
        self._stderr: str | None = as_expression(stderr)
        self.validate()

    def _check_arguments(
        self, arguments: Iterable[str | Argument] | None
    ) -> MutableSequence[str | Argument]:
        checked = []
        for argument in arguments or []:
            match argument:
                case Argument():
                    checked.append(argument)
                case str():
                    checked.append(as_expression(argument))
                case MutableMapping():
                    checked.append(Argument.load(argument))
                case int() | float() if not isinstance(argument, bool):
                    checked.append(str(argument))
                case _:
                    raise ValidationError(
                        f"Invalid argument {argument!r} for process `{self.id}`"
                    )
        return checked

    def _check_base_command(
        self, base_command: Any
    ) -> str | MutableSequence[str] | FunctionCommand | None:
        match base_command:
            case None | FunctionCommand():
                return base_command
            case str():
                return base_command
            case MutableSequence() | tuple() if all(
                isinstance(t, str) for t in base_command
            ):
                return list(base_command)
            case _:
                raise ValidationError(
                    f"Invalid base command {base_command!r} for process `{self.id}`"
                )

    @property
    def arguments(self) -> MutableSequence[str | Argument]:
        return self._arguments

    @arguments.setter
    def arguments(self, value: Iterable[str | Argument] | None) -> None:
        self._update("_arguments", self._check_arguments(value))

    @property
    def base_command(self) -> str | MutableSequence[str] | FunctionCommand | None:
        return self._base_command

    @base_command.setter
    def base_command(self, value: str | MutableSequence[str] | FunctionCommand) -> None:
        self._base_command = self._check_base_command(value)

    @property
    def stderr(self) -> str | None:
        return self._stderr

    @stderr.setter
    def stderr(self, value: str | None) -> None:
        self._update("_stderr", as_expression(value))

    @property
    def stdout(self) -> str | None:
        return self._stdout

    @stdout.setter
    def stdout(self, value: str | None) -> None:
        self._update("_stdout", as_expression(value))

    def _update(self, attr: str, value: Any) -> None:
        previous = getattr(self, attr)
        setattr(self, attr, value)
        try:
            self.validate()
        except ValidationError:
            setattr(self, attr, previous)
            raise

    def add_hint(self, hint: Requirement) -> None:
        hints = self.hints.copy()
        hints.add(hint)
        self._update("hints", hints)

    def add_requirement(self, requirement: Requirement) -> None:
        requirements = self.requirements.copy()
        requirements.add(requirement)
        self._update("requirements", requirements)

    def output_ids(self) -> MutableSequence[str]:
        # Tools without outputs capture their standard output
        return self.outputs.ids() or [STDOUT_OUTPUT]

    def copy(self) -> Process:
        process = Process(
            id=self.id,
            base_command=self._base_command,
            arguments=list(self._arguments),
            inputs=self.inputs.copy(),
            outputs=self.outputs.copy(),
            requirements=self.requirements.copy(),
            hints=self.hints.copy(),
            stdout=self._stdout,
            stderr=self._stderr,
            meta=self.meta.copy(),
            cwl_version=self.cwl_version,
        )
        process._values = dict(self._values)
        return process

    def validate(self) -> None:
        for output in self.outputs:
            if output.output_source is not None:
                raise ValidationError(
                    f"Output `{output.id}` of tool `{self.id}` declares `outputSource`, "
                    "which is only allowed on workflow outputs"
                )
        references = {
            "arguments": get_dependencies(
                [a.save() if isinstance(a, Argument) else a for a in self._arguments]
            ),
            "input bindings": get_dependencies(
                [p.value_from for p in self.inputs if p.value_from is not None]
            ),
            "output bindings": get_dependencies(
                [p.save() for p in self.outputs]
            ),
            "stdout": get_dependencies(self._stdout),
            "stderr": get_dependencies(self._stderr),
            "requirements": get_dependencies(self.requirements.save()),
            "hints": get_dependencies(self.hints.save()),
        }
        for where, dependencies in references.items():
            if missing := sorted(dependencies - set(self.inputs.ids())):
                raise ValidationError(
                    f"Expressions in the {where} of process `{self.id}` "
                    f"reference undeclared inputs {missing}"
                )
