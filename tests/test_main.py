import json
import os
import sys

import pytest
from ruamel.yaml import YAML

from cwlbuilder.main import main
from cwlbuilder.version import VERSION

FAKE_RUNNER = os.path.join(os.path.dirname(__file__), "utils", "fake_runner.py")

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

WORKFLOW = """
cwlVersion: v1.0
class: Workflow
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


@pytest.fixture
def documents(tmp_path):
    (tmp_path / "echo.cwl").write_text(ECHO)
    (tmp_path / "wf.cwl").write_text(WORKFLOW)
    config = tmp_path / "cwlbuilder.yml"
    config.write_text(
        json.dumps(
            {"version": "v1.0", "runner": {"command": [sys.executable, FAKE_RUNNER]}}
        )
    )
    return tmp_path


def test_version(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out == f"cwlbuilder version {VERSION}\n"


def test_schema(capsys):
    assert main(["schema", "--pretty"]) == 0
    schema = json.loads(capsys.readouterr().out)
    assert schema["required"] == ["version"]


def test_emit(documents, capsys):
    assert main(["emit", str(documents / "wf.cwl")]) == 0
    doc = YAML(typ="safe").load(capsys.readouterr().out)
    assert doc["class"] == "Workflow"
    assert doc["steps"]["say"]["run"]["baseCommand"] == "echo"
    assert main(["emit", str(documents / "echo.cwl"), "--outdir", str(documents / "out")]) == 0
    assert os.path.exists(documents / "out" / "echo.cwl")
    assert os.path.exists(documents / "out" / "echo.yml")


def test_invalid_targets(documents):
    assert main(["emit", str(documents / "missing.cwl")]) == 1
    assert main(["emit", "cwlbuilder.cwl.process:Process"]) == 1
    assert main(["plot", str(documents / "echo.cwl")]) == 1


def test_plot(documents, capsys):
    assert main(["plot", str(documents / "wf.cwl")]) == 0
    source = capsys.readouterr().out
    assert source.startswith("digraph wf {")
    assert '"input/text" -> "step/say" [label=message]' in source


def test_doc(documents, capsys):
    assert main(["doc", str(documents / "echo.cwl")]) == 0
    assert capsys.readouterr().out.startswith("# echo\n")
    assert main(["doc", str(documents / "wf.cwl"), "-o", str(documents / "wf.md")]) == 0
    with open(documents / "wf.md") as f:
        assert "## Steps" in f.read()


def test_run(documents, capsys):
    outdir = documents / "run"
    args = [
        "run",
        str(documents / "echo.cwl"),
        "-i",
        "message=Hello World!",
        "--config",
        str(documents / "cwlbuilder.yml"),
        "--no-docker",
        "--outdir",
        str(outdir),
    ]
    assert main(args) == 0
    output = json.loads(capsys.readouterr().out)
    assert output == {"output": str(outdir / "message.txt")}
    with open(outdir / "message.txt") as f:
        assert f.read() == "Hello World!\n"


def test_batch(documents, capsys):
    jobs = documents / "jobs.yml"
    jobs.write_text("inputs:\n  message: [one, two]\nkeys: [first, second]\n")
    args = [
        "batch",
        str(documents / "echo.cwl"),
        str(jobs),
        "--config",
        str(documents / "cwlbuilder.yml"),
        "--no-docker",
        "--outdir",
        str(documents / "batch"),
        "--workers",
        "2",
    ]
    assert main(args) == 0
    results = json.loads(capsys.readouterr().out)
    assert [r["key"] for r in results] == ["first", "second"]
    assert [r["status"] for r in results] == ["COMPLETED", "COMPLETED"]
    assert results[1]["output"] == {
        "output": str(documents / "batch" / "second" / "message.txt")
    }
    jobs.write_text("inputs:\n  message: [one, fail]\n")
    assert main(args) == 1
    results = json.loads(capsys.readouterr().out)
    assert [r["status"] for r in results] == ["COMPLETED", "FAILED"]


def test_missing_config(documents):
    args = [
        "run",
        str(documents / "echo.cwl"),
        "-i",
        "message=Hi",
        "--config",
        str(documents / "other.yml"),
    ]
    assert main(args) == 1
