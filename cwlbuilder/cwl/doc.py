from __future__ import annotations

from collections.abc import MutableMapping, MutableSequence
from importlib.resources import files
from typing import Any

from jinja2 import Template

from cwlbuilder.cwl.process import AbstractProcess, Process
from cwlbuilder.cwl.script import FunctionCommand
from cwlbuilder.cwl.workflow import Workflow


def _describe(
    obj: Any, annotations: MutableMapping[str, MutableMapping[str, str]]
) -> str:
    entry = annotations.get(obj.id, {})
    parts = [
        p for p in (obj.label or entry.get("label"), obj.doc or entry.get("doc")) if p
    ]
    return ". ".join(p.strip().replace("\n", " ") for p in parts)


def _get_command(process: AbstractProcess) -> str | None:
    if not isinstance(process, Process):
        return None
    match process.base_command:
        case FunctionCommand() as command:
            return f"{command.interpreter} {command.script_name}"
        case MutableSequence() as tokens:
            return " ".join(tokens)
        case command:
            return command


def render_markdown(process: AbstractProcess) -> str:
    """Render a Markdown reference page for ``process``."""
    template = Template(
        files(__package__)
        .joinpath("templates")
        .joinpath("process.md.jinja2")
        .read_text("utf-8"),
        keep_trailing_newline=True,
    )
    return template.render(
        title=process.id or process.label or process.class_name,
        label=process.label,
        doc=process.doc,
        class_name=process.class_name,
        base_command=_get_command(process),
        inputs=[
            {
                "id": p.id,
                "type": str(p.type),
                "default": p.default,
                "description": _describe(p, process.meta.inputs),
            }
            for p in process.inputs.sorted()
        ],
        outputs=[
            {
                "id": p.id,
                "type": str(p.type),
                "description": _describe(p, process.meta.outputs),
            }
            for p in sorted(process.outputs, key=lambda p: p.id)
        ],
        steps=(
            [
                {
                    "id": s.id,
                    "run": s.run.id or s.run.class_name,
                    "description": _describe(s, process.meta.steps),
                }
                for s in process
            ]
            if isinstance(process, Workflow)
            else []
        ),
        requirements=[r.class_name for r in process.requirements],
    )
