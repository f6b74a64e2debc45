from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, MutableMapping, MutableSequence
from typing import Any

from cwlbuilder.core.exception import DanglingReference, NotFound, ValidationError
from cwlbuilder.core.utils import remove_empty
from cwlbuilder.cwl.expression import as_expression
from cwlbuilder.cwl.parameter import InputParam, OutputParam, check_id, save_value
from cwlbuilder.cwl.process import AbstractProcess, Meta
from cwlbuilder.cwl.requirement import (
    Requirement,
    Requirements,
    require_multiple_input,
    require_scatter,
    require_step_input_expression,
    require_subworkflow,
)
from cwlbuilder.log_handler import logger

SCATTER_METHODS = ("dotproduct", "nested_crossproduct", "flat_crossproduct")
OVERRIDABLE_FIELDS = (
    "arguments",
    "base_command",
    "doc",
    "hints",
    "label",
    "requirements",
    "stderr",
    "stdout",
)


class Literal:
    """Marks a string step input as a literal value rather than a source reference."""

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value: Any = value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class StepInput:
    __slots__ = ("source", "default", "value_from", "link_merge")

    def __init__(
        self,
        source: str | MutableSequence[str] | None = None,
        default: Any | None = None,
        value_from: str | None = None,
        link_merge: str | None = None,
    ):
        if isinstance(source, (MutableSequence, tuple)):
            if not all(isinstance(s, str) for s in source):
                raise ValidationError(f"Step input sources must be strings, got {source!r}")
            source = list(source)
        elif source is not None and not isinstance(source, str):
            raise ValidationError(f"Step input source must be a string, got {source!r}")
        if link_merge not in (None, "merge_nested", "merge_flattened"):
            raise ValidationError(f"Invalid linkMerge `{link_merge}`")
        self.source: str | MutableSequence[str] | None = source
        self.default: Any | None = default
        self.value_from: str | None = as_expression(value_from)
        self.link_merge: str | None = link_merge

    def __repr__(self) -> str:
        return f"StepInput({self.save()!r})"

    @property
    def sources(self) -> MutableSequence[str]:
        if self.source is None:
            return []
        elif isinstance(self.source, str):
            return [self.source]
        else:
            return list(self.source)

    def save(self) -> Any:
        if (
            isinstance(self.source, str)
            and self.default is None
            and self.value_from is None
        ):
            return self.source
        return remove_empty(
            {
                "source": save_value(self.source),
                "linkMerge": self.link_merge,
                "default": save_value(self.default),
                "valueFrom": save_value(self.value_from),
            }
        )


class Step:
    """
    One invocation of a tool or a nested workflow.

    Each value of ``in_`` is either a source reference (a workflow input id or a
    ``<step>/<output>`` pair), a :class:`StepInput`, a :class:`Literal` or any other non-string
    value, which is passed as a literal default checked against the input type.
    """

    def __init__(
        self,
        id: str,
        run: AbstractProcess,
        in_: MutableMapping[str, Any] | None = None,
        scatter: str | MutableSequence[str] | None = None,
        scatter_method: str | None = None,
        label: str | None = None,
        doc: str | None = None,
    ):
        self.id: str = check_id(id, "step")
        if not isinstance(run, AbstractProcess):
            raise ValidationError(
                f"Step `{self.id}` must run a tool or a workflow, got {run!r}"
            )
        self.run: AbstractProcess = run
        self.in_: MutableMapping[str, StepInput] = {
            k: self._get_step_input(k, v) for k, v in (in_ or {}).items()
        }
        self.scatter: MutableSequence[str] = (
            [scatter] if isinstance(scatter, str) else list(scatter or [])
        )
        if unknown := sorted(set(self.scatter) - set(self.in_.keys())):
            raise ValidationError(
                f"Step `{self.id}` scatters over {unknown}, which are not among its inputs"
            )
        if scatter_method is not None and scatter_method not in SCATTER_METHODS:
            raise ValidationError(
                f"Invalid scatter method `{scatter_method}` for step `{self.id}`: "
                f"expected one of {SCATTER_METHODS}"
            )
        if scatter_method is not None and not self.scatter:
            raise ValidationError(
                f"Step `{self.id}` sets a scatter method without scattering any input"
            )
        if scatter_method is None and len(self.scatter) > 1:
            scatter_method = "dotproduct"
        self.scatter_method: str | None = scatter_method
        self.label: str | None = label
        self.doc: str | None = doc

    def __repr__(self) -> str:
        return f"Step(id={self.id!r}, run={self.run!r})"

    def _get_step_input(self, key: str, value: Any) -> StepInput:
        if key not in self.run.inputs:
            raise NotFound(
                f"Step `{self.id}` binds `{key}`, which is not an input of `{self.run.id}`: "
                f"declared inputs are {self.run.inputs.ids()}"
            )
        match value:
            case StepInput():
                step_input = value
            case str():
                return StepInput(source=value)
            case Literal():
                step_input = StepInput(default=value.value)
            case MutableSequence() | tuple() if value and all(
                isinstance(v, str) for v in value
            ):
                return StepInput(source=list(value))
            case _:
                step_input = StepInput(default=value)
        if step_input.default is not None:
            step_input.default = self.run.inputs[key].type.coerce(
                step_input.default,
                check_paths=False,
                where=f"Literal value of `{self.id}/{key}`",
            )
        return step_input

    @property
    def out(self) -> MutableSequence[str]:
        return self.run.output_ids()

    def copy(self, run: AbstractProcess | None = None) -> Step:
        return Step(
            id=self.id,
            run=run if run is not None else self.run,
            in_=dict(self.in_),
            scatter=list(self.scatter),
            scatter_method=self.scatter_method,
            label=self.label,
            doc=self.doc,
        )

    def save(self) -> MutableMapping[str, Any]:
        return {
            "in": {k: self.in_[k].save() for k in sorted(self.in_.keys())},
            "out": self.out,
            "scatter": (
                self.scatter[0] if len(self.scatter) == 1 else list(self.scatter)
            ),
            "scatterMethod": self.scatter_method,
        }


class Workflow(AbstractProcess):
    """
    An ordered sequence of steps.

    Steps can only reference workflow inputs and outputs of steps already added, so the
    insertion order is always a valid topological order of the step graph.
    """

    class_name = "Workflow"

    def __init__(
        self,
        id: str | None = None,
        inputs: Iterable[InputParam] | None = None,
        outputs: Iterable[OutputParam] | None = None,
        steps: Iterable[Step] | None = None,
        requirements: Iterable[Requirement] | None = None,
        hints: Iterable[Requirement] | None = None,
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
        self._steps: MutableMapping[str, Step] = {}
        for step in steps or []:
            self.add_step(step)

    def __contains__(self, step_id: str) -> bool:
        return step_id in self._steps

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def _add_capability(self, requirement: Requirement) -> None:
        if requirement.class_name not in self.requirements:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    f"Adding {requirement.class_name} to workflow `{self.id}`"
                )
            self.requirements.add(requirement)

    def _check_source(self, step: Step, key: str, source: str) -> None:
        if "/" in source:
            step_id, _, output_id = source.partition("/")
            if step_id not in self._steps:
                raise DanglingReference(
                    f"Input `{key}` of step `{step.id}` references `{source}`, "
                    f"but no step `{step_id}` has been added before it"
                )
            if output_id not in self._steps[step_id].out:
                raise DanglingReference(
                    f"Input `{key}` of step `{step.id}` references `{source}`, "
                    f"but step `{step_id}` has no output `{output_id}`"
                )
        elif source not in self.inputs:
            raise DanglingReference(
                f"Input `{key}` of step `{step.id}` references `{source}`, "
                f"which is not an input of workflow `{self.id}`"
            )

    def _get_own_step(self, step_id: str) -> Step:
        if step_id not in self._steps:
            raise NotFound(
                f"Workflow `{self.id}` has no step `{step_id}`: "
                f"declared steps are {list(self._steps.keys())}"
            )
        return self._steps[step_id]

    def add_step(self, step: Step) -> Workflow:
        """Append ``step``, checking its references against the workflow built so far."""
        if not isinstance(step, Step):
            raise ValidationError(f"Expected a step, got {step!r}")
        if step.id in self._steps:
            raise ValidationError(
                f"Duplicate step id `{step.id}` in workflow `{self.id}`"
            )
        for key, step_input in step.in_.items():
            for source in step_input.sources:
                self._check_source(step, key, source)
        if step.scatter:
            self._add_capability(require_scatter())
        if any(len(i.sources) > 1 for i in step.in_.values()):
            self._add_capability(require_multiple_input())
        if any(i.value_from is not None for i in step.in_.values()):
            self._add_capability(require_step_input_expression())
        if isinstance(step.run, Workflow):
            self._add_capability(require_subworkflow())
        self._steps[step.id] = step
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Added step `{step.id}` to workflow `{self.id}`")
        return self

    def copy(self) -> Workflow:
        workflow = Workflow(
            id=self.id,
            inputs=self.inputs.copy(),
            outputs=self.outputs.copy(),
            requirements=self.requirements.copy(),
            hints=self.hints.copy(),
            meta=self.meta.copy(),
            cwl_version=self.cwl_version,
        )
        workflow._steps = dict(self._steps)
        workflow._values = dict(self._values)
        return workflow

    def extend(self, other: Workflow) -> Workflow:
        """
        Append the inputs, steps and outputs of ``other`` to this workflow.

        The workflow is left unchanged if ``other`` cannot be appended.
        """
        extended = self.copy()
        for param in other.inputs:
            if (current := extended.inputs.get(param.id)) is None:
                extended.inputs.add(param)
            elif current.type != param.type:
                raise ValidationError(
                    f"Input `{param.id}` has type `{current.type}` in workflow `{self.id}` "
                    f"and `{param.type}` in workflow `{other.id}`"
                )
        for step in other:
            extended.add_step(step)
        for output in other.outputs:
            extended.outputs.add(output)
        for requirement in other.requirements:
            if requirement.class_name not in extended.requirements:
                extended.requirements.add(requirement)
        for hint in other.hints:
            if hint.class_name not in extended.hints:
                extended.hints.add(hint)
        self.inputs = extended.inputs
        self.outputs = extended.outputs
        self.requirements = extended.requirements
        self.hints = extended.hints
        self._steps = extended._steps
        return self

    def get_step(self, path: str) -> Step:
        """Return the step addressed by ``path``, e.g. ``align/index`` for a nested step."""
        head, _, rest = path.partition("/")
        step = self._get_own_step(head)
        if not rest:
            return step
        if not isinstance(step.run, Workflow):
            raise NotFound(
                f"Step `{head}` runs a tool, so `{rest}` cannot be a nested step"
            )
        return step.run.get_step(rest)

    def set_arguments(self, path: str, arguments: Iterable[Any]) -> None:
        self.set_step_field(path, "arguments", list(arguments))

    def set_hints(self, path: str, hints: Iterable[Requirement]) -> None:
        self.set_step_field(path, "hints", hints)

    def set_requirements(self, path: str, requirements: Iterable[Requirement]) -> None:
        self.set_step_field(path, "requirements", requirements)

    def set_step_field(self, path: str, field: str, value: Any) -> None:
        """
        Replace ``field`` on the process run by the step addressed by ``path``.

        Every process along the path is copied before being modified, so that steps sharing the
        same process object elsewhere are left untouched.
        """
        if field not in OVERRIDABLE_FIELDS:
            raise ValidationError(
                f"Field `{field}` cannot be overridden: expected one of {OVERRIDABLE_FIELDS}"
            )
        head, _, rest = path.partition("/")
        step = self._get_own_step(head)
        run = step.run.copy()
        if rest:
            if not isinstance(run, Workflow):
                raise NotFound(
                    f"Step `{head}` runs a tool, so `{rest}` cannot be a nested step"
                )
            run.set_step_field(rest, field, value)
        elif field in ("requirements", "hints"):
            requirements: Requirements = getattr(run, field)
            for requirement in value:
                requirements.set(requirement)
            run.validate()
        elif not hasattr(type(run), field):
            raise ValidationError(
                f"Step `{head}` runs a {run.class_name}, which has no `{field}` field"
            )
        else:
            setattr(run, field, value)
        self._steps[head] = step.copy(run=run)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Overridden `{field}` of step `{path}` in workflow `{self.id}`")

    @property
    def steps(self) -> MutableSequence[Step]:
        return list(self._steps.values())

    def validate(self) -> None:
        for output in self.outputs:
            if not output.sources:
                raise DanglingReference(
                    f"Output `{output.id}` of workflow `{self.id}` has no `outputSource`"
                )
            for source in output.sources:
                step_id, _, output_id = source.partition("/")
                if (
                    not output_id
                    or step_id not in self._steps
                    or output_id not in self._steps[step_id].out
                ):
                    raise DanglingReference(
                        f"Output `{output.id}` of workflow `{self.id}` is sourced at "
                        f"`{source}`, which is not the output of any step"
                    )
        for step in self._steps.values():
            step.run.validate()
