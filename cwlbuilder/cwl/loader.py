from __future__ import annotations

import logging
import os
from collections.abc import Collection, MutableMapping, MutableSequence
from typing import Any

from ruamel.yaml import YAML

from cwlbuilder.core.exception import DanglingReference, ValidationError
from cwlbuilder.cwl.emitter import RESERVED_KEYS
from cwlbuilder.cwl.parameter import InputParam, OutputParam
from cwlbuilder.cwl.process import AbstractProcess, Meta, Process
from cwlbuilder.cwl.requirement import Requirement
from cwlbuilder.cwl.workflow import Step, StepInput, Workflow
from cwlbuilder.log_handler import logger


def _plain(value: Any) -> Any:
    if isinstance(value, str):
        return str(value)
    elif isinstance(value, MutableSequence):
        return [_plain(v) for v in value]
    elif isinstance(value, MutableMapping):
        return {str(k): _plain(v) for k, v in value.items()}
    else:
        return value


def _short_id(id: str) -> str:
    return id.split("#")[-1].split("/")[-1]


def _short_source(source: str, step_ids: Collection[str]) -> str:
    # Sources may be fully qualified, e.g. `#main/step/output` or `#main/input`
    parts = source.split("#")[-1].split("/")
    if len(parts) > 2:
        return "/".join(parts[-2:])
    elif len(parts) == 2 and parts[0] not in step_ids:
        return parts[1]
    return "/".join(parts)


def _short_sources(
    source: str | MutableSequence[str] | None, step_ids: Collection[str]
) -> str | MutableSequence[str] | None:
    if isinstance(source, MutableSequence):
        return [_short_source(s, step_ids) for s in source]
    elif source is not None:
        return _short_source(source, step_ids)
    return None


def _as_mapping(
    entries: MutableMapping[str, Any] | MutableSequence[Any] | None, key: str = "id"
) -> MutableMapping[str, Any]:
    if entries is None:
        return {}
    elif isinstance(entries, MutableMapping):
        return {_short_id(k): v for k, v in entries.items()}
    mapping = {}
    for entry in entries:
        if key not in entry:
            raise ValidationError(f"List entry {entry!r} has no `{key}` field")
        mapping[_short_id(entry[key])] = {k: v for k, v in entry.items() if k != key}
    return mapping


def _load_requirements(
    entries: MutableMapping[str, Any] | MutableSequence[Any] | None,
) -> MutableSequence[Requirement]:
    if isinstance(entries, MutableMapping):
        entries = [{"class": k} | (v or {}) for k, v in entries.items()]
    return [Requirement.load(e) for e in entries or []]


def _load_input(id: str, record: Any, tool: bool) -> InputParam:
    if not isinstance(record, MutableMapping) or "type" not in record:
        record = {"type": record}
    binding = record.get("inputBinding")
    return InputParam(
        id=id,
        type=record["type"],
        label=record.get("label"),
        doc=record.get("doc"),
        default=record.get("default"),
        prefix=(binding or {}).get("prefix"),
        separate=(binding or {}).get("separate", True),
        position=(binding or {}).get("position"),
        item_separator=(binding or {}).get("itemSeparator"),
        value_from=(binding or {}).get("valueFrom"),
        shell_quote=(binding or {}).get("shellQuote"),
        bound=tool and binding is not None,
    )


def _load_output(
    id: str, record: Any, step_ids: Collection[str] = ()
) -> OutputParam:
    if not isinstance(record, MutableMapping) or "type" not in record:
        record = {"type": record}
    binding = record.get("outputBinding") or {}
    return OutputParam(
        id=id,
        type=record["type"],
        label=record.get("label"),
        doc=record.get("doc"),
        glob=binding.get("glob"),
        output_eval=binding.get("outputEval"),
        load_contents=binding.get("loadContents", False),
        output_source=_short_sources(record.get("outputSource"), step_ids),
        link_merge=record.get("linkMerge"),
    )


def _load_step(
    id: str,
    record: MutableMapping[str, Any],
    basedir: str,
    step_ids: Collection[str],
) -> Step:
    match record.get("run"):
        case str() as path:
            run = load_file(os.path.join(basedir, path))
        case MutableMapping() as doc:
            run = load_document(doc, id=_short_id(doc.get("id", id)), basedir=basedir)
        case other:
            raise ValidationError(f"Step `{id}` has an invalid `run` field: {other!r}")
    in_ = {}
    for key, value in _as_mapping(record.get("in")).items():
        if isinstance(value, MutableMapping):
            in_[key] = StepInput(
                source=_short_sources(value.get("source"), step_ids),
                default=value.get("default"),
                value_from=value.get("valueFrom"),
                link_merge=value.get("linkMerge"),
            )
        else:
            in_[key] = StepInput(source=_short_sources(value, step_ids))
    scatter = record.get("scatter")
    return Step(
        id=id,
        run=run,
        in_=in_,
        scatter=(
            [_short_id(s) for s in scatter]
            if isinstance(scatter, MutableSequence)
            else _short_id(scatter) if scatter is not None else None
        ),
        scatter_method=record.get("scatterMethod"),
        label=record.get("label"),
        doc=record.get("doc"),
    )


def _add_steps(workflow: Workflow, steps: MutableSequence[Step]) -> None:
    pending = list(steps)
    while pending:
        for step in pending:
            sources = [s for i in step.in_.values() for s in i.sources if "/" in s]
            if all(s.split("/")[0] in workflow for s in sources):
                workflow.add_step(step)
                pending.remove(step)
                break
        else:
            raise DanglingReference(
                f"Steps {[s.id for s in pending]} of workflow `{workflow.id}` "
                "reference steps that do not exist or form a cycle"
            )


def load_document(
    doc: MutableMapping[str, Any], id: str | None = None, basedir: str | None = None
) -> AbstractProcess:
    """Build a tool or workflow object from a parsed CWL document."""
    doc = _plain(doc)
    basedir = basedir or os.getcwd()
    id = id or (_short_id(doc["id"]) if "id" in doc else None)
    meta = Meta(
        extensions={
            k: v
            for k, v in doc.items()
            if k not in RESERVED_KEYS and k not in ("$graph",)
        }
    )
    common = {
        "id": id,
        "requirements": _load_requirements(doc.get("requirements")),
        "hints": _load_requirements(doc.get("hints")),
        "label": doc.get("label"),
        "doc": doc.get("doc"),
        "meta": meta,
        "cwl_version": doc.get("cwlVersion", "v1.0"),
    }
    match doc.get("class"):
        case "CommandLineTool":
            process = Process(
                base_command=doc.get("baseCommand"),
                arguments=doc.get("arguments"),
                inputs=[
                    _load_input(k, v, tool=True)
                    for k, v in _as_mapping(doc.get("inputs")).items()
                ],
                outputs=[
                    _load_output(k, v)
                    for k, v in _as_mapping(doc.get("outputs")).items()
                ],
                stdout=doc.get("stdout"),
                stderr=doc.get("stderr"),
                **common,
            )
        case "Workflow":
            steps = _as_mapping(doc.get("steps"))
            process = Workflow(
                inputs=[
                    _load_input(k, v, tool=False)
                    for k, v in _as_mapping(doc.get("inputs")).items()
                ],
                outputs=[
                    _load_output(k, v, steps.keys())
                    for k, v in _as_mapping(doc.get("outputs")).items()
                ],
                **common,
            )
            _add_steps(
                process,
                [
                    _load_step(k, v, basedir, steps.keys())
                    for k, v in steps.items()
                ],
            )
        case other:
            raise ValidationError(f"Unsupported process class `{other}`")
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Loaded {process.class_name} `{process.id}`")
    return process


def load_file(path: str) -> AbstractProcess:
    yaml = YAML(typ="safe")
    with open(path) as f:
        doc = yaml.load(f)
    if not isinstance(doc, MutableMapping):
        raise ValidationError(f"File `{path}` does not contain a CWL document")
    return load_document(
        doc,
        id=os.path.splitext(os.path.basename(path))[0],
        basedir=os.path.dirname(os.path.abspath(path)),
    )
