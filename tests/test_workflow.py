import pytest

from cwlbuilder.core.exception import (
    DanglingReference,
    NotFound,
    TypeMismatch,
    ValidationError,
)
from cwlbuilder.cwl.emitter import emit
from cwlbuilder.cwl.parameter import InputParam, OutputParam
from cwlbuilder.cwl.process import Process
from cwlbuilder.cwl.requirement import (
    MultipleInputFeatureRequirement,
    ScatterFeatureRequirement,
    StepInputExpressionRequirement,
    SubworkflowFeatureRequirement,
    require_docker,
)
from cwlbuilder.cwl.workflow import Literal, Step, StepInput, Workflow


def _get_count() -> Process:
    return Process(
        id="Count",
        base_command=["wc", "-c"],
        inputs=[InputParam("name", "string")],
        outputs=[OutputParam("count", "File", glob="count.txt")],
        stdout="count.txt",
    )


def _get_outer(build: Workflow) -> Workflow:
    outer = Workflow(
        id="outer",
        inputs=[InputParam("tarball", "File"), InputParam("name", "string")],
        outputs=[OutputParam("compiled", "File", output_source="inner/compiled")],
    )
    outer.add_step(Step("inner", build, in_={"tarball": "tarball", "name": "name"}))
    return outer


def test_steps_keep_insertion_order(build):
    assert [s.id for s in build.steps] == ["Uncomp", "Compile"]
    assert build.get_step("Compile").out == ["output"]
    build.validate()


def test_reference_to_missing_step(uncomp, compile_):
    """A step cannot reference a step that is not part of the workflow yet."""
    workflow = Workflow(id="wf", inputs=[InputParam("tarball", "File")])
    with pytest.raises(DanglingReference):
        workflow.add_step(Step("Compile", compile_, in_={"rfile": "Uncomp/rfile"}))
    workflow.add_step(Step("Uncomp", uncomp, in_={"tfile": "tarball"}))
    with pytest.raises(DanglingReference):
        workflow.add_step(Step("Compile", compile_, in_={"rfile": "Uncomp/nothing"}))
    with pytest.raises(DanglingReference):
        workflow.add_step(Step("Compile", compile_, in_={"rfile": "archive"}))
    workflow.add_step(Step("Compile", compile_, in_={"rfile": "Uncomp/rfile"}))
    with pytest.raises(ValidationError):
        workflow.add_step(Step("Compile", compile_, in_={"rfile": "Uncomp/rfile"}))


def test_unknown_step_input(compile_):
    with pytest.raises(NotFound):
        Step("Compile", compile_, in_={"source": "tarball"})


def test_literals(uncomp):
    step = Step("Uncomp", uncomp, in_={"tfile": "tarball", "ifile": Literal("hello.c")})
    assert step.in_["ifile"].default == "hello.c"
    assert step.save()["in"] == {"ifile": {"default": "hello.c"}, "tfile": "tarball"}
    with pytest.raises(TypeMismatch):
        Step("Uncomp", uncomp, in_={"ifile": 42})


def test_invalid_workflow_outputs(uncomp):
    workflow = Workflow(
        id="wf",
        inputs=[InputParam("tarball", "File")],
        outputs=[OutputParam("out", "File", output_source="Compile/output")],
    )
    workflow.add_step(Step("Uncomp", uncomp, in_={"tfile": "tarball"}))
    with pytest.raises(DanglingReference):
        workflow.validate()
    workflow.outputs.replace(OutputParam("out", "File", output_source="tarball"))
    with pytest.raises(DanglingReference):
        workflow.validate()
    workflow.outputs.replace(OutputParam("out", "File", output_source="Uncomp/rfile"))
    workflow.validate()


def test_scatter(uncomp):
    workflow = Workflow(
        id="wf", inputs=[InputParam("tarballs", "File[]"), InputParam("names", "string[]")]
    )
    workflow.add_step(
        Step("Uncomp", uncomp, in_={"tfile": "tarballs", "ifile": "names"}, scatter=["tfile", "ifile"])
    )
    assert ScatterFeatureRequirement in workflow.requirements
    saved = workflow.get_step("Uncomp").save()
    assert saved["scatter"] == ["tfile", "ifile"]
    assert saved["scatterMethod"] == "dotproduct"
    step = Step(
        "Uncomp",
        uncomp,
        in_={"tfile": "tarballs", "ifile": "names"},
        scatter="tfile",
        scatter_method="flat_crossproduct",
    )
    assert step.save()["scatter"] == "tfile"
    with pytest.raises(ValidationError):
        Step("Uncomp", uncomp, in_={"tfile": "tarballs"}, scatter="ifile")
    with pytest.raises(ValidationError):
        Step("Uncomp", uncomp, in_={"tfile": "tarballs"}, scatter="tfile", scatter_method="zip")


def test_capabilities(build, uncomp):
    workflow = Workflow(
        id="wf", inputs=[InputParam("a", "File"), InputParam("b", "string"), InputParam("c", "string")]
    )
    workflow.add_step(
        Step(
            "Uncomp",
            uncomp,
            in_={
                "tfile": "a",
                "ifile": StepInput(source=["b", "c"], value_from="$(self.join('.'))"),
            },
        )
    )
    assert MultipleInputFeatureRequirement in workflow.requirements
    assert StepInputExpressionRequirement in workflow.requirements
    assert SubworkflowFeatureRequirement not in workflow.requirements
    outer = _get_outer(build)
    assert SubworkflowFeatureRequirement in outer.requirements


def test_extend_is_associative(build, uncomp):
    """Concatenating partial workflows gives the same graph as appending every step."""
    first = Workflow(
        id="wf",
        inputs=[InputParam("tarball", "File"), InputParam("name", "string")],
        outputs=[OutputParam("rfile", "File", output_source="Uncomp/rfile")],
    )
    first.add_step(Step("Uncomp", uncomp, in_={"tfile": "tarball", "ifile": "name"}))
    second = Workflow(
        id="second",
        inputs=[InputParam("name", "string")],
        outputs=[OutputParam("count", "File", output_source="Count/count")],
    )
    second.add_step(Step("Count", _get_count(), in_={"name": "name"}))
    whole = Workflow(
        id="wf",
        inputs=[InputParam("tarball", "File"), InputParam("name", "string")],
        outputs=[
            OutputParam("rfile", "File", output_source="Uncomp/rfile"),
            OutputParam("count", "File", output_source="Count/count"),
        ],
    )
    whole.add_step(Step("Uncomp", uncomp, in_={"tfile": "tarball", "ifile": "name"}))
    whole.add_step(Step("Count", _get_count(), in_={"name": "name"}))
    assert emit(first.extend(second)) == emit(whole)
    conflicting = Workflow(id="conflicting", inputs=[InputParam("name", "int")])
    with pytest.raises(ValidationError):
        whole.extend(conflicting)


def test_failed_extend_leaves_workflow_unchanged(build, uncomp):
    before = emit(build)
    other = Workflow(
        id="other",
        inputs=[InputParam("extra", "string"), InputParam("archive", "File")],
        outputs=[OutputParam("count", "File", output_source="Again/count")],
        steps=[
            Step("Again", _get_count(), in_={"name": "extra"}),
            Step("Uncomp", uncomp, in_={"tfile": "archive", "ifile": "extra"}),
        ],
    )
    with pytest.raises(ValidationError):
        build.extend(other)
    assert [s.id for s in build.steps] == ["Uncomp", "Compile"]
    assert "extra" not in build.inputs
    assert build.outputs.ids() == ["compiled"]
    assert emit(build) == before


def test_get_step(build):
    outer = _get_outer(build)
    assert outer.get_step("inner/Compile").run.id == "Compile"
    with pytest.raises(NotFound):
        outer.get_step("inner/Link")
    with pytest.raises(NotFound):
        outer.get_step("inner/Compile/rfile")


def test_override_nested_fields(build):
    """Overrides only affect the addressed step, never the shared process objects."""
    outer = _get_outer(build)
    original = build.get_step("Compile").run
    outer.set_arguments("inner/Compile", ["-O2", "-c"])
    outer.set_requirements("inner/Compile", [require_docker("gcc:13")])
    outer.set_hints("inner/Uncomp", [require_docker("debian")])
    compile_ = outer.get_step("inner/Compile").run
    assert compile_.arguments == ["-O2", "-c"]
    assert compile_.requirements.get("DockerRequirement").docker_pull == "gcc:13"
    assert outer.get_step("inner/Uncomp").run.hints.get("DockerRequirement").docker_pull == "debian"
    assert original.arguments == ["-c"]
    assert "DockerRequirement" not in original.requirements
    assert build.get_step("Compile").run is original
    outer.set_requirements("inner/Compile", [require_docker("gcc:14")])
    assert len(outer.get_step("inner/Compile").run.requirements) == 1
    assert (
        outer.get_step("inner/Compile").run.requirements.get("DockerRequirement").docker_pull
        == "gcc:14"
    )


def test_invalid_overrides(build):
    outer = _get_outer(build)
    with pytest.raises(ValidationError):
        outer.set_step_field("inner/Compile", "inputs", [])
    with pytest.raises(ValidationError):
        outer.set_step_field("inner", "stdout", "out.txt")
    with pytest.raises(ValidationError):
        outer.set_arguments("inner/Compile", ["$(inputs.missing)"])
    with pytest.raises(NotFound):
        outer.set_arguments("inner/Link", ["-c"])
    assert outer.get_step("inner/Compile").run.arguments == ["-c"]
