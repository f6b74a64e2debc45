from cwlbuilder.cwl.doc import render_markdown
from cwlbuilder.cwl.process import Meta
from cwlbuilder.cwl.requirement import require_docker


def test_tool_page(echo):
    echo.meta = Meta(
        label="Print a message",
        doc="Writes its input to the standard output.",
        inputs={"sth": {"doc": "The message"}},
    )
    echo.add_requirement(require_docker("ubuntu"))
    page = render_markdown(echo)
    assert page.startswith("# echo\n\nPrint a message\n\nWrites its input to the standard output.\n")
    assert "**Class**: `CommandLineTool`" in page
    assert "**Command**: `echo`" in page
    assert "| `sth` | `string` |  | The message |" in page
    assert "## Outputs\n\nNone.\n" in page
    assert "## Requirements\n\n- `DockerRequirement`\n" in page


def test_workflow_page(build):
    page = render_markdown(build)
    assert page.startswith("# build\n")
    assert "**Command**" not in page
    assert "| `compiled` | `File` |  |" in page
    assert "## Steps\n\n1. **Uncomp** (`Uncomp`)\n2. **Compile** (`Compile`)\n" in page
    assert "## Requirements" not in page
