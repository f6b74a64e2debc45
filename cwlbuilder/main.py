from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import MutableMapping, Sequence
from typing import Any

from ruamel.yaml import YAML

from cwlbuilder.config.schema import CWLBuilderSchema
from cwlbuilder.config.validator import ConfigValidator
from cwlbuilder.core.exception import ValidationError
from cwlbuilder.core.utils import get_object_from_name
from cwlbuilder.cwl.dag import to_dot
from cwlbuilder.cwl.doc import render_markdown
from cwlbuilder.cwl.emitter import emit, write_cwl
from cwlbuilder.cwl.loader import load_file
from cwlbuilder.cwl.process import AbstractProcess
from cwlbuilder.cwl.workflow import Workflow
from cwlbuilder.log_handler import CustomFormatter, HighlitingFilter, logger
from cwlbuilder.parser import parser
from cwlbuilder.runner.batch import BatchDispatcher
from cwlbuilder.runner.dispatcher import CWLRunner, run_process
from cwlbuilder.version import VERSION


def _configure_logging(args: argparse.Namespace) -> None:
    if args.quiet:
        logger.setLevel(logging.WARNING)
    elif args.debug:
        logger.setLevel(logging.DEBUG)
    if args.color and hasattr(sys.stdout, "isatty") and sys.stdout.isatty():
        colored_stream_handler = logging.StreamHandler()
        colored_stream_handler.setFormatter(CustomFormatter())
        logger.handlers = []
        logger.addHandler(colored_stream_handler)
        logger.addFilter(HighlitingFilter())


def _get_runner(args: argparse.Namespace) -> tuple[CWLRunner, MutableMapping[str, Any]]:
    if os.path.exists(args.config):
        config = ConfigValidator().validate_file(args.config)
    else:
        if args.config != "cwlbuilder.yml":
            raise ValidationError(f"Configuration file `{args.config}` does not exist")
        config = {"version": "v1.0"}
    runner = CWLRunner.from_config(config)
    if args.no_docker:
        runner.docker = False
    return runner, config


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2))


def load_target(target: str) -> AbstractProcess:
    if os.path.isfile(target):
        process = load_file(target)
    elif ":" in target:
        process = get_object_from_name(target)
    else:
        raise ValidationError(
            f"Target `{target}` is neither a file nor a `module:attribute` reference"
        )
    if not isinstance(process, AbstractProcess):
        raise ValidationError(
            f"Target `{target}` is a {type(process).__name__}, not a tool or a workflow"
        )
    return process


async def _async_batch(args: argparse.Namespace) -> None:
    process = load_target(args.target)
    runner, config = _get_runner(args)
    with open(args.jobs) as f:
        jobs = YAML(typ="safe").load(f) or {}
    if "inputs" not in jobs:
        raise ValidationError(f"Jobs file `{args.jobs}` has no `inputs` section")
    dispatcher = BatchDispatcher(
        process=process,
        runner=runner,
        workers=args.workers or config.get("batch", {}).get("workers"),
        outdir=args.outdir,
    )
    results = await dispatcher.run(
        inputs=jobs["inputs"], params=jobs.get("params"), keys=jobs.get("keys")
    )
    _print_json(
        [
            {
                "key": r.key,
                "status": r.status,
                "output": r.result.output if r.result else None,
                "error": str(r.error) if r.error else None,
            }
            for r in results
        ]
    )
    if not all(r.ok for r in results):
        raise ValidationError(
            f"{sum(1 for r in results if not r.ok)} of {len(results)} jobs did not complete"
        )


async def _async_run(args: argparse.Namespace) -> None:
    process = load_target(args.target)
    runner, _ = _get_runner(args)
    yaml = YAML(typ="safe")
    for binding in args.input:
        id, sep, value = binding.partition("=")
        if not sep:
            raise ValidationError(f"Invalid input binding `{binding}`: expected ID=VALUE")
        if process.inputs[id].type.name in ("string", "File", "Directory"):
            process.set_value(id, value)
        else:
            process.set_value(id, yaml.load(value))
    result = await run_process(process, args.outdir, runner)
    _print_json(result.output)


def _doc(args: argparse.Namespace) -> None:
    page = render_markdown(load_target(args.target))
    if args.output:
        with open(args.output, "w") as f:
            f.write(page)
    else:
        print(page, end="")


def _emit(args: argparse.Namespace) -> None:
    process = load_target(args.target)
    if args.outdir:
        write_cwl(process, args.outdir, args.prefix, args.cwl_version)
    else:
        print(emit(process, args.cwl_version, validate=args.validate), end="")


def _plot(args: argparse.Namespace) -> None:
    process = load_target(args.target)
    if not isinstance(process, Workflow):
        raise ValidationError(f"Target `{args.target}` is not a workflow")
    dot = to_dot(process)
    if args.format == "gv":
        print(dot.source, end="")
    else:
        path = dot.render(
            args.output or process.id or "workflow", format=args.format, cleanup=True
        )
        if logger.isEnabledFor(logging.INFO):
            logger.info(f"Written {path}")


def main(args: Sequence[str]) -> int:
    try:
        parsed_args = parser.parse_args(args)
        if hasattr(parsed_args, "quiet"):
            _configure_logging(parsed_args)
        match parsed_args.context:
            case "batch":
                asyncio.run(_async_batch(parsed_args))
            case "doc":
                _doc(parsed_args)
            case "emit":
                _emit(parsed_args)
            case "plot":
                _plot(parsed_args)
            case "run":
                asyncio.run(_async_run(parsed_args))
            case "schema":
                print(CWLBuilderSchema().dump(parsed_args.version, parsed_args.pretty))
            case "version":
                print(f"cwlbuilder version {VERSION}")
            case _:
                parser.print_help(file=sys.stderr)
                return 1
        return 0
    except SystemExit as se:
        if se.code != 0:
            logger.exception(se)
        return int(se.code) if se.code is not None else 1
    except Exception as e:
        logger.exception(e)
        return 1


def run() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    main(sys.argv[1:])
