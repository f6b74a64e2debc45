import os

import pytest
from ruamel.yaml import YAML

from cwlbuilder.core.exception import EmissionError
from cwlbuilder.cwl.emitter import emit, emit_values, save_process, write_cwl
from cwlbuilder.cwl.loader import load_document
from cwlbuilder.cwl.parameter import InputParam, OutputParam
from cwlbuilder.cwl.process import Meta, Process
from cwlbuilder.cwl.requirement import require_js, require_manifest, require_network
from cwlbuilder.cwl.script import FunctionCommand
from cwlbuilder.cwl.workflow import Step, StepInput, Workflow


def _load(text: str):
    return YAML(typ="safe").load(text)


def test_echo(echo):
    """A tool without outputs captures its standard output."""
    echo.set_value("sth", "Hello World!")
    doc = _load(emit(echo))
    assert doc["cwlVersion"] == "v1.0"
    assert doc["class"] == "CommandLineTool"
    assert doc["baseCommand"] == "echo"
    assert doc["inputs"] == {"sth": {"type": "string", "inputBinding": {}}}
    assert doc["outputs"] == {"output": {"type": "stdout"}}
    assert doc["stdout"].startswith("file")
    assert _load(emit_values(echo)) == {"sth": "Hello World!"}


def test_key_order(echo):
    echo.label = "Print"
    echo.add_requirement(require_js())
    assert list(_load(emit(echo)).keys()) == [
        "cwlVersion",
        "class",
        "label",
        "baseCommand",
        "requirements",
        "hints",
        "inputs",
        "outputs",
        "stdout",
    ]


def test_determinism(echo, build):
    echo.set_value("sth", "Hello World!")
    assert emit(echo) == emit(echo)
    assert emit(echo) == emit(echo.copy())
    assert emit(build) == emit(build)
    assert emit(build) == emit(build.copy())


@pytest.mark.parametrize("name", ["echo", "touch", "build"])
def test_round_trip(request, name):
    """Emitting a loaded document gives back the same document."""
    process = request.getfixturevalue(name)
    text = emit(process)
    assert emit(load_document(_load(text), id=process.id)) == text


def test_workflow(build):
    doc = _load(emit(build))
    assert doc["class"] == "Workflow"
    assert list(doc["steps"].keys()) == ["Uncomp", "Compile"]
    assert doc["outputs"] == {"compiled": {"type": "File", "outputSource": "Compile/output"}}
    assert doc["inputs"] == {"name": {"type": "string"}, "tarball": {"type": "File"}}
    uncomp = doc["steps"]["Uncomp"]
    assert list(uncomp.keys()) == ["run", "in", "out"]
    assert "cwlVersion" not in uncomp["run"]
    assert uncomp["in"] == {"ifile": "name", "tfile": "tarball"}
    assert uncomp["out"] == ["rfile"]
    assert doc["steps"]["Compile"]["in"] == {"rfile": "Uncomp/rfile"}


def test_parameter_order():
    process = Process(
        id="cp",
        base_command="cp",
        inputs=[
            InputParam("target", "string", position=2),
            InputParam("source", "File", position=1),
            InputParam("recursive", "boolean", prefix="-r"),
            InputParam("force", "boolean", prefix="-f"),
        ],
    )
    assert list(_load(emit(process))["inputs"].keys()) == [
        "source",
        "target",
        "force",
        "recursive",
    ]


def test_manifest():
    process = Process(
        id="cat",
        base_command="cat",
        arguments=["ifiles"],
        inputs=[InputParam("ifiles", "File[]", bound=False)],
        requirements=[require_js(), require_manifest("ifiles")],
    )
    requirements = _load(emit(process))["requirements"]
    assert requirements[0] == {"class": "InlineJavascriptRequirement"}
    assert requirements[1]["class"] == "InitialWorkDirRequirement"
    (entry,) = requirements[1]["listing"]
    assert entry["entryname"] == "ifiles"
    assert entry["entry"] == (
        '${return inputs.ifiles.map(function(f){return f.path;}).join("\\n");}'
    )


def test_javascript_requirement_is_added():
    """Expressions with JavaScript get the requirement that lets the runner evaluate them."""
    process = Process(
        id="cat",
        base_command="cat",
        arguments=["ifiles"],
        inputs=[InputParam("ifiles", "File[]", bound=False)],
        requirements=[require_manifest("ifiles")],
    )
    doc = _load(emit(process))
    assert [r["class"] for r in doc["requirements"]] == [
        "InitialWorkDirRequirement",
        "InlineJavascriptRequirement",
    ]
    assert "InlineJavascriptRequirement" not in process.requirements
    assert emit(load_document(doc, id="cat")) == emit(process)
    process.add_hint(require_js())
    assert [r["class"] for r in _load(emit(process))["requirements"]] == [
        "InitialWorkDirRequirement"
    ]
    references = Process(
        id="ls",
        base_command="ls",
        inputs=[InputParam("dir", "Directory")],
        outputs=[OutputParam("listing", "File", glob="$(inputs.dir.basename)")],
    )
    assert _load(emit(references))["requirements"] == []


def test_javascript_in_step_inputs(uncomp):
    workflow = Workflow(
        id="wf",
        inputs=[InputParam("a", "File"), InputParam("b", "string")],
        outputs=[OutputParam("rfile", "File", output_source="Uncomp/rfile")],
    )
    workflow.add_step(
        Step(
            "Uncomp",
            uncomp,
            in_={
                "tfile": "a",
                "ifile": StepInput(source="b", value_from="${ return self + '.c'; }"),
            },
        )
    )
    assert [r["class"] for r in _load(emit(workflow))["requirements"]] == [
        "StepInputExpressionRequirement",
        "InlineJavascriptRequirement",
    ]


def test_function_command():
    process = Process(
        id="index",
        base_command=FunctionCommand(
            "def index(prefix, size):\n    return f'{prefix}.{size}'\n"
        ),
        inputs=[InputParam("prefix", "string"), InputParam("size", "int[]")],
    )
    doc = _load(emit(process))
    assert doc["baseCommand"] == ["python3", "index.py"]
    assert doc["inputs"]["prefix"]["inputBinding"] == {"prefix": "prefix=", "separate": False}
    assert doc["inputs"]["size"]["inputBinding"] == {
        "prefix": "size=",
        "separate": False,
        "itemSeparator": ",",
    }
    (listing,) = [r for r in doc["requirements"] if r["class"] == "InitialWorkDirRequirement"]
    (entry,) = listing["listing"]
    assert entry["entryname"] == "index.py"
    assert "def index(prefix, size):" in entry["entry"]
    assert process.base_command.name == "index"


def test_version_check():
    process = Process(
        id="fetch", base_command="wget", requirements=[require_network()]
    )
    with pytest.raises(EmissionError):
        emit(process)
    assert _load(emit(process, "v1.1"))["cwlVersion"] == "v1.1"
    with pytest.raises(EmissionError):
        emit(process, "v0.9")


def test_meta(echo):
    echo.meta = Meta(
        label="Echo",
        inputs={"sth": {"label": "Something", "doc": "What to print"}},
        outputs={"output": {"doc": "Printed text"}},
        extensions={"$namespaces": {"s": "https://schema.org/"}, "s:author": "me"},
    )
    doc = _load(emit(echo))
    assert doc["label"] == "Echo"
    assert doc["inputs"]["sth"] == {
        "type": "string",
        "label": "Something",
        "doc": "What to print",
        "inputBinding": {},
    }
    assert doc["outputs"]["output"] == {"type": "stdout", "doc": "Printed text"}
    assert doc["$namespaces"] == {"s": "https://schema.org/"}
    assert doc["s:author"] == "me"
    echo.meta.inputs["nothing"] = {"label": "Nothing"}
    with pytest.raises(EmissionError):
        emit(echo)
    echo.meta.inputs.pop("nothing")
    echo.meta.extensions["inputs"] = {}
    with pytest.raises(EmissionError):
        emit(echo)


def test_multiline_strings(echo):
    echo.doc = "Print something.\n\nAnything really.\n"
    text = emit(echo)
    assert "doc: |" in text
    assert _load(text)["doc"] == echo.doc


def test_nested_workflow(build):
    outer = Workflow(
        id="outer",
        inputs=[InputParam("tarball", "File"), InputParam("name", "string")],
        outputs=[OutputParam("compiled", "File", output_source="inner/compiled")],
    )
    outer.add_step(Step("inner", build, in_={"tarball": "tarball", "name": "name"}))
    doc = save_process(outer)
    assert doc["requirements"] == [{"class": "SubworkflowFeatureRequirement"}]
    assert doc["steps"]["inner"]["run"]["class"] == "Workflow"
    assert list(doc["steps"]["inner"]["run"]["steps"].keys()) == ["Uncomp", "Compile"]


def test_validate(echo):
    emit(echo, validate=True)


def test_write_cwl(echo, tmp_path):
    echo.set_value("sth", "Hello World!")
    cwl, values = write_cwl(echo, str(tmp_path / "out"))
    assert os.path.basename(cwl) == "echo.cwl"
    assert os.path.basename(values) == "echo.yml"
    with open(values) as f:
        assert _load(f.read()) == {"sth": "Hello World!"}
    cwl, _ = write_cwl(echo, str(tmp_path / "out"), prefix="main")
    assert os.path.basename(cwl) == "main.cwl"
