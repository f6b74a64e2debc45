from __future__ import annotations

import io
import logging
import os
from collections.abc import MutableMapping, MutableSequence
from copy import deepcopy
from typing import Any

import cwl_utils.parser
from ruamel.yaml import YAML
from ruamel.yaml.scalarstring import LiteralScalarString
from schema_salad.exceptions import ValidationException

from cwlbuilder.core.exception import EmissionError
from cwlbuilder.core.utils import remove_empty, stable_name
from cwlbuilder.cwl.expression import escape_literal, requires_javascript
from cwlbuilder.cwl.parameter import save_value
from cwlbuilder.cwl.process import (
    CWL_VERSIONS,
    STDOUT_OUTPUT,
    AbstractProcess,
    Argument,
    Process,
)
from cwlbuilder.cwl.requirement import (
    Dirent,
    InitialWorkDirRequirement,
    InlineJavascriptRequirement,
    Requirements,
)
from cwlbuilder.cwl.script import FunctionCommand
from cwlbuilder.cwl.workflow import Workflow
from cwlbuilder.log_handler import logger

RESERVED_KEYS = frozenset(
    (
        "arguments",
        "baseCommand",
        "class",
        "cwlVersion",
        "doc",
        "hints",
        "id",
        "inputs",
        "label",
        "outputs",
        "requirements",
        "stderr",
        "stdout",
        "steps",
    )
)


def _check_version(
    requirements: Requirements, version: str, where: str, process_id: str | None
) -> None:
    for requirement in requirements:
        if CWL_VERSIONS.index(requirement.min_version) > CWL_VERSIONS.index(version):
            raise EmissionError(
                f"{requirement.class_name} in the {where} of `{process_id}` requires CWL "
                f"{requirement.min_version}, but the document targets {version}"
            )


def _literal_strings(value: Any) -> Any:
    if isinstance(value, str) and "\n" in value:
        return LiteralScalarString(value)
    elif isinstance(value, MutableSequence):
        return [_literal_strings(v) for v in value]
    elif isinstance(value, MutableMapping):
        return {k: _literal_strings(v) for k, v in value.items()}
    else:
        return value


def materialize(process: Process) -> Process:
    """Turn a function base command into an interpreter call on a staged script."""
    command: FunctionCommand = process.base_command
    script = command.render({p.id: p.type for p in process.inputs})
    materialized = process.copy()
    materialized.base_command = [command.interpreter, command.script_name]
    materialized.requirements.add(
        InitialWorkDirRequirement(
            listing=[Dirent(entryname=command.script_name, entry=escape_literal(script))]
        )
    )
    for param in process.inputs:
        materialized.inputs.replace(
            param.copy(
                prefix=f"{param.id}=",
                separate=False,
                item_separator="," if param.type.is_array else param.item_separator,
                bound=True,
            )
        )
    return materialized


def _save_inputs(process: AbstractProcess, binding: bool) -> MutableMapping[str, Any]:
    inputs = {}
    known = process.inputs.ids()
    for param in process.inputs.sorted():
        record = param.save(binding=binding)
        annotations = process.meta.describe("inputs", param.id, known)
        inputs[param.id] = _annotate(record, annotations)
    return inputs


def _save_outputs(
    process: AbstractProcess, workflow: bool
) -> MutableMapping[str, Any]:
    outputs = {}
    known = process.output_ids()
    for param in sorted(process.outputs, key=lambda p: p.id):
        record = param.save(workflow=workflow)
        annotations = process.meta.describe("outputs", param.id, known)
        outputs[param.id] = _annotate(record, annotations)
    if not outputs and not workflow:
        outputs[STDOUT_OUTPUT] = _annotate(
            {"type": "stdout"},
            process.meta.describe("outputs", STDOUT_OUTPUT, known),
        )
    return outputs


def _annotate(
    record: MutableMapping[str, Any], annotations: MutableMapping[str, str]
) -> MutableMapping[str, Any]:
    annotated = {}
    if "type" in record:
        annotated["type"] = record.pop("type")
    for key in ("label", "doc"):
        if (value := record.pop(key, None) or annotations.get(key)) is not None:
            annotated[key] = value
    return annotated | record


def _get_stdout(process: Process) -> str | None:
    if process.stdout is not None or len(process.outputs) > 0:
        return save_value(process.stdout)
    command = process.base_command
    return stable_name(
        "file",
        process.id or "",
        " ".join(command) if isinstance(command, MutableSequence) else str(command),
        *process.inputs.ids(),
    )


def _uses_javascript(process: AbstractProcess) -> bool:
    values = [
        process.requirements.save(),
        process.hints.save(),
        [p.value_from for p in process.inputs],
        [p.save(workflow=isinstance(process, Workflow)) for p in process.outputs],
    ]
    if isinstance(process, Process):
        values.append(
            [a.save() if isinstance(a, Argument) else a for a in process.arguments]
        )
        values.append([process.stdout, process.stderr])
    elif isinstance(process, Workflow):
        values.append([i.value_from for s in process for i in s.in_.values()])
    return requires_javascript(values)


def _add_javascript(process: AbstractProcess) -> AbstractProcess:
    if (
        InlineJavascriptRequirement.class_name in process.requirements
        or InlineJavascriptRequirement.class_name in process.hints
        or not _uses_javascript(process)
    ):
        return process
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Adding InlineJavascriptRequirement to `{process.id}`")
    process = process.copy()
    process.requirements.add(InlineJavascriptRequirement())
    return process


def save_process(
    process: AbstractProcess, cwl_version: str | None = None, top: bool = True
) -> MutableMapping[str, Any]:
    """Build the document of ``process`` as a plain dictionary, in emission order."""
    version = cwl_version or process.cwl_version
    if version not in CWL_VERSIONS:
        raise EmissionError(f"Unsupported CWL version `{version}`")
    if isinstance(process, Process) and isinstance(
        process.base_command, FunctionCommand
    ):
        process = materialize(process)
    process.validate()
    process = _add_javascript(process)
    _check_version(process.requirements, version, "requirements", process.id)
    _check_version(process.hints, version, "hints", process.id)
    doc = {}
    if top:
        doc["cwlVersion"] = version
    doc["class"] = process.class_name
    doc["label"] = process.label
    doc["doc"] = process.doc
    if isinstance(process, Process):
        doc["baseCommand"] = save_value(process.base_command)
        doc["arguments"] = [
            a.save() if isinstance(a, Argument) else save_value(a)
            for a in process.arguments
        ]
    doc = remove_empty(doc)
    doc["requirements"] = process.requirements.save()
    doc["hints"] = process.hints.save()
    doc["inputs"] = _save_inputs(process, binding=isinstance(process, Process))
    doc["outputs"] = _save_outputs(process, workflow=isinstance(process, Workflow))
    if isinstance(process, Workflow):
        known = [s.id for s in process]
        doc["steps"] = {}
        for step in process:
            annotations = process.meta.describe("steps", step.id, known)
            record = {
                "label": step.label or annotations.get("label"),
                "doc": step.doc or annotations.get("doc"),
                "run": save_process(step.run, version, top=False),
            } | step.save()
            doc["steps"][step.id] = remove_empty(record) | {
                "in": record["in"],
                "out": record["out"],
            }
    elif isinstance(process, Process):
        doc |= remove_empty(
            {"stdout": _get_stdout(process), "stderr": save_value(process.stderr)}
        )
    for key, value in process.meta.extensions.items():
        if key in RESERVED_KEYS:
            raise EmissionError(
                f"Extension `{key}` of `{process.id}` overrides a reserved field"
            )
        doc[key] = deepcopy(value)
    return doc


def emit(
    process: AbstractProcess,
    cwl_version: str | None = None,
    validate: bool = False,
) -> str:
    """Serialize ``process`` as a CWL document."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"EMITTING {process.class_name} `{process.id}`")
    doc = save_process(process, cwl_version)
    if validate:
        validate_document(doc, f"{process.id or 'main'}.cwl")
    return dump_yaml(doc)


def emit_values(process: AbstractProcess) -> str:
    """Serialize the values currently bound to the inputs of ``process``."""
    return dump_yaml(process.values)


def dump_yaml(doc: MutableMapping[str, Any]) -> str:
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.width = 4096
    with io.StringIO() as buffer:
        yaml.dump(_literal_strings(doc), buffer)
        return buffer.getvalue()


def validate_document(doc: MutableMapping[str, Any], name: str = "main.cwl") -> None:
    """Check ``doc`` against the CWL schema, raising an EmissionError when it is rejected."""
    uri = "file://" + os.path.abspath(name)
    try:
        cwl_utils.parser.load_document_by_yaml(deepcopy(doc), uri)
    except ValidationException as e:
        raise EmissionError(f"Document `{name}` is not valid CWL:\n{e}") from e


def write_cwl(
    process: AbstractProcess,
    outdir: str,
    prefix: str | None = None,
    cwl_version: str | None = None,
) -> tuple[str, str]:
    """Write ``<prefix>.cwl`` and ``<prefix>.yml`` into ``outdir``, returning their paths."""
    prefix = prefix or process.id or "main"
    os.makedirs(outdir, exist_ok=True)
    cwl_path = os.path.join(outdir, f"{prefix}.cwl")
    values_path = os.path.join(outdir, f"{prefix}.yml")
    with open(cwl_path, "w") as f:
        f.write(emit(process, cwl_version))
    with open(values_path, "w") as f:
        f.write(emit_values(process))
    if logger.isEnabledFor(logging.INFO):
        logger.info(f"Written {cwl_path} and {values_path}")
    return cwl_path, values_path
