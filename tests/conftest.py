from __future__ import annotations

import os
import sys

import pytest

from cwlbuilder.cwl.parameter import InputParam, OutputParam
from cwlbuilder.cwl.process import Process
from cwlbuilder.cwl.workflow import Step, Workflow
from cwlbuilder.runner.dispatcher import CWLRunner

FAKE_RUNNER = os.path.join(os.path.dirname(__file__), "utils", "fake_runner.py")


def get_uncomp() -> Process:
    return Process(
        id="Uncomp",
        base_command=["tar", "xf"],
        inputs=[
            InputParam("tfile", "File", position=1),
            InputParam("ifile", "string", position=2),
        ],
        outputs=[OutputParam("rfile", "File", glob="$(inputs.ifile)")],
    )


def get_compile() -> Process:
    return Process(
        id="Compile",
        base_command="gcc",
        arguments=["-c"],
        inputs=[InputParam("rfile", "File")],
        outputs=[OutputParam("output", "File", glob="*.o")],
    )


@pytest.fixture
def echo() -> Process:
    return Process(
        id="echo",
        base_command="echo",
        inputs=[InputParam("sth", "string")],
    )


@pytest.fixture
def touch() -> Process:
    return Process(
        id="touch",
        base_command="touch",
        inputs=[InputParam("names", "string[]")],
        outputs=[OutputParam("txt", "File[]", glob="*.txt")],
    )


@pytest.fixture
def uncomp() -> Process:
    return get_uncomp()


@pytest.fixture
def compile_() -> Process:
    return get_compile()


@pytest.fixture
def build() -> Workflow:
    workflow = Workflow(
        id="build",
        inputs=[InputParam("tarball", "File"), InputParam("name", "string")],
        outputs=[OutputParam("compiled", "File", output_source="Compile/output")],
    )
    workflow.add_step(
        Step("Uncomp", get_uncomp(), in_={"tfile": "tarball", "ifile": "name"})
    )
    workflow.add_step(Step("Compile", get_compile(), in_={"rfile": "Uncomp/rfile"}))
    return workflow


@pytest.fixture
def runner() -> CWLRunner:
    return CWLRunner(command=[sys.executable, FAKE_RUNNER], docker=False)
