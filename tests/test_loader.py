import pytest

from cwlbuilder.core.exception import DanglingReference, ValidationError
from cwlbuilder.cwl.emitter import emit
from cwlbuilder.cwl.loader import load_document, load_file
from cwlbuilder.cwl.process import Process
from cwlbuilder.cwl.requirement import GenericRequirement
from cwlbuilder.cwl.workflow import Workflow

ECHO = """
cwlVersion: v1.0
class: CommandLineTool
baseCommand: echo
inputs:
  message:
    type: string
    inputBinding:
      position: 1
outputs:
  output:
    type: stdout
stdout: message.txt
"""


def _get_tool(id: str, input_id: str = "message"):
    return {
        "class": "CommandLineTool",
        "id": f"#{id}",
        "baseCommand": "echo",
        "inputs": [{"id": f"#{id}/{input_id}", "type": "string", "inputBinding": {}}],
        "outputs": [{"id": f"#{id}/output", "type": "stdout"}],
        "stdout": "out.txt",
    }


def test_qualified_ids():
    """Fully qualified ids and list forms are reduced to the short forms."""
    doc = {
        "cwlVersion": "v1.0",
        "class": "Workflow",
        "id": "#main",
        "inputs": [{"id": "#main/text", "type": "string"}],
        "outputs": [
            {"id": "#main/result", "type": "File", "outputSource": "#main/second/output"}
        ],
        "steps": [
            {
                "id": "#main/first",
                "run": _get_tool("first"),
                "in": [{"id": "#main/first/message", "source": "#main/text"}],
                "out": ["#main/first/output"],
            },
            {
                "id": "#main/second",
                "run": _get_tool("second", "previous"),
                "in": [{"id": "#main/second/previous", "source": "#main/first/output"}],
                "out": ["#main/second/output"],
            },
        ],
    }
    workflow = load_document(doc)
    assert isinstance(workflow, Workflow)
    assert workflow.id == "main"
    assert workflow.inputs.ids() == ["text"]
    assert workflow.outputs["result"].output_source == "second/output"
    assert workflow.get_step("first").in_["message"].source == "text"
    assert workflow.get_step("second").in_["previous"].source == "first/output"
    assert workflow.get_step("second").run.id == "second"


def test_steps_are_sorted():
    doc = {
        "class": "Workflow",
        "inputs": {"text": "string"},
        "outputs": {},
        "steps": {
            "second": {"run": _get_tool("second", "previous"), "in": {"previous": "first/output"}},
            "first": {"run": _get_tool("first"), "in": {"message": "text"}},
        },
    }
    assert [s.id for s in load_document(doc).steps] == ["first", "second"]


def test_cycles():
    doc = {
        "class": "Workflow",
        "inputs": {},
        "outputs": {},
        "steps": {
            "first": {"run": _get_tool("first"), "in": {"message": "second/output"}},
            "second": {"run": _get_tool("second"), "in": {"message": "first/output"}},
        },
    }
    with pytest.raises(DanglingReference):
        load_document(doc)


def test_unsupported_documents(tmp_path):
    with pytest.raises(ValidationError):
        load_document({"class": "ExpressionTool", "inputs": {}, "outputs": {}})
    path = tmp_path / "list.cwl"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValidationError):
        load_file(str(path))


def test_load_file(tmp_path):
    (tmp_path / "echo.cwl").write_text(ECHO)
    (tmp_path / "wf.cwl").write_text(
        """
cwlVersion: v1.0
class: Workflow
$namespaces:
  s: https://schema.org/
s:author: someone
requirements:
  cwltool:Secrets:
    secrets: []
inputs:
  text: string
outputs:
  result:
    type: File
    outputSource: say/output
steps:
  say:
    run: echo.cwl
    in:
      message: text
    out: [output]
"""
    )
    workflow = load_file(str(tmp_path / "wf.cwl"))
    assert workflow.id == "wf"
    step = workflow.get_step("say")
    assert isinstance(step.run, Process)
    assert step.run.id == "echo"
    assert step.run.inputs["message"].position == 1
    assert step.run.stdout == "message.txt"
    assert workflow.meta.extensions == {
        "$namespaces": {"s": "https://schema.org/"},
        "s:author": "someone",
    }
    (requirement,) = workflow.requirements
    assert isinstance(requirement, GenericRequirement)
    assert requirement.save() == {"class": "cwltool:Secrets", "secrets": []}
    text = emit(workflow)
    assert "s:author: someone" in text
    assert "class: cwltool:Secrets" in text
