import argparse
import os

common_parser = argparse.ArgumentParser(add_help=False)
common_parser.add_argument(
    "--color",
    action="store_true",
    help="Prints log preamble with colors related to the logging level",
)
common_parser.add_argument(
    "--debug", action="store_true", help="Prints debug-level diagnostic output"
)
common_parser.add_argument(
    "--quiet", action="store_true", help="Only prints results, warnings and errors"
)

target_parser = argparse.ArgumentParser(add_help=False)
target_parser.add_argument(
    "target",
    metavar="TARGET",
    type=str,
    help="Either a `module:attribute` reference to a tool or workflow object, "
    "or the path of a CWL document",
)

runner_parser = argparse.ArgumentParser(add_help=False)
runner_parser.add_argument(
    "--config",
    "-c",
    default="cwlbuilder.yml",
    type=str,
    help="Path to the cwlbuilder file configuring the runner (default: cwlbuilder.yml, if present)",
)
runner_parser.add_argument(
    "--no-docker",
    action="store_true",
    help="Run tools without containers, overriding the configuration file",
)
runner_parser.add_argument(
    "--outdir",
    default=os.getcwd(),
    type=str,
    help="Output directory in which to store documents and results (default: current directory)",
)

parser = argparse.ArgumentParser(description="cwlbuilder Command Line")
subparsers = parser.add_subparsers(dest="context")

# cwlbuilder batch
batch_parser = subparsers.add_parser(
    "batch",
    parents=[common_parser, target_parser, runner_parser],
    help="Run a tool or workflow over many sets of input values",
)
batch_parser.add_argument(
    "jobs",
    metavar="JOBS",
    type=str,
    help="YAML file with the per-job `inputs` (id: [values]), "
    "the shared `params` (id: value) and the optional job `keys`",
)
batch_parser.add_argument(
    "--workers",
    "-w",
    type=int,
    help="Maximum number of concurrent jobs (default: from the configuration file, "
    "or the number of CPUs)",
)

# cwlbuilder doc
doc_parser = subparsers.add_parser(
    "doc",
    parents=[common_parser, target_parser],
    help="Render a Markdown reference page for a tool or workflow",
)
doc_parser.add_argument(
    "--output", "-o", type=str, help="Write the page to a file instead of stdout"
)

# cwlbuilder emit
emit_parser = subparsers.add_parser(
    "emit",
    parents=[common_parser, target_parser],
    help="Print the CWL document of a tool or workflow",
)
emit_parser.add_argument(
    "--cwl-version",
    choices=["v1.0", "v1.1", "v1.2"],
    type=str,
    help="Target CWL version (default: the one of the process)",
)
emit_parser.add_argument(
    "--outdir",
    type=str,
    help="Write `<prefix>.cwl` and `<prefix>.yml` into this directory instead of printing",
)
emit_parser.add_argument(
    "--prefix", type=str, help="Name of the written files (default: the process id)"
)
emit_parser.add_argument(
    "--validate",
    action="store_true",
    help="Check the document against the CWL schema before printing it",
)

# cwlbuilder plot
plot_parser = subparsers.add_parser(
    "plot",
    parents=[common_parser, target_parser],
    help="Draw the step graph of a workflow",
)
plot_parser.add_argument(
    "--format",
    default="gv",
    type=str,
    choices=["gv", "pdf", "png", "svg"],
    help="Output format. `gv` prints the DOT source (default: gv)",
)
plot_parser.add_argument(
    "--output",
    "-o",
    type=str,
    help="Path of the rendered file, without extension (default: the workflow id)",
)

# cwlbuilder run
run_parser = subparsers.add_parser(
    "run",
    parents=[common_parser, target_parser, runner_parser],
    help="Run a tool or workflow with an external CWL runner",
)
run_parser.add_argument(
    "--input",
    "-i",
    action="append",
    default=[],
    metavar="ID=VALUE",
    type=str,
    help="Bind a value to an input. Values are parsed as YAML, e.g. `-i files=[a.txt,b.txt]`",
)

# cwlbuilder schema
schema_parser = subparsers.add_parser(
    "schema", help="Dump the cwlbuilder configuration JSON Schema"
)
schema_parser.add_argument(
    "--pretty", action="store_true", help="Format the schema with indentation"
)
schema_parser.add_argument(
    "--version",
    default="v1.0",
    type=str,
    choices=["v1.0"],
    help="Version of the configuration format (default: v1.0)",
)

# cwlbuilder version
version_parser = subparsers.add_parser(
    "version", help="Only print cwlbuilder version and exit"
)
