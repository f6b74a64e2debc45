from __future__ import annotations

import json
import logging
import os
import shlex
from collections.abc import Iterable, MutableMapping, MutableSequence
from typing import Any
from urllib.parse import unquote, urlparse

from cwlbuilder.core.config import Config
from cwlbuilder.core.exception import RunnerFailure, ValidationError
from cwlbuilder.core.utils import random_name
from cwlbuilder.cwl.emitter import write_cwl
from cwlbuilder.cwl.process import AbstractProcess
from cwlbuilder.log_handler import logger
from cwlbuilder.runner import backend_classes
from cwlbuilder.runner.base import Backend
from cwlbuilder.runner.local import LocalBackend


def _parse_output(value: Any) -> Any:
    if isinstance(value, MutableMapping) and value.get("class") in ("File", "Directory"):
        if "path" in value:
            return value["path"]
        location = urlparse(value["location"])
        return unquote(location.path) if location.scheme == "file" else value["location"]
    elif isinstance(value, MutableSequence):
        return [_parse_output(v) for v in value]
    elif isinstance(value, MutableMapping):
        return {k: _parse_output(v) for k, v in value.items()}
    else:
        return value


def parse_outputs(stdout: str) -> MutableMapping[str, Any]:
    """Turn the JSON output object printed by a CWL runner into ``{id: path | [paths] | value}``."""
    # Some runners print warnings before the output object
    start = stdout.find("{")
    if start < 0:
        raise ValueError("no JSON object found")
    outputs = json.loads(stdout[start:])
    if not isinstance(outputs, MutableMapping):
        raise ValueError("the output is not a JSON object")
    return {k: _parse_output(v) for k, v in outputs.items()}


class RunResult:
    __slots__ = ("command", "output", "logs")

    def __init__(self, command: str, output: MutableMapping[str, Any], logs: str):
        self.command: str = command
        self.output: MutableMapping[str, Any] = output
        self.logs: str = logs

    def __repr__(self) -> str:
        return f"RunResult(command={self.command!r}, output={self.output!r})"


class CWLRunner:
    """Invokes an external CWL runner (``cwltool`` by default) through a backend."""

    def __init__(
        self,
        command: str | Iterable[str] = "cwltool",
        args: Iterable[str] = (),
        docker: bool = True,
        timeout: int | None = None,
        backend: Backend | None = None,
    ):
        self.command: MutableSequence[str] = (
            shlex.split(command) if isinstance(command, str) else list(command)
        )
        self.args: MutableSequence[str] = list(args)
        self.docker: bool = docker
        self.timeout: int | None = timeout
        self.backend: Backend = backend or LocalBackend()

    @classmethod
    def from_config(cls, config: MutableMapping[str, Any]) -> CWLRunner:
        runner_config = config.get("runner", {})
        backend_config = Config(
            **config.get("batch", {}).get("backend", {"type": "local"})
        )
        if (backend_class := backend_classes.get(backend_config.type)) is None:
            raise ValidationError(f"Unknown backend type `{backend_config.type}`")
        return cls(
            command=runner_config.get("command", "cwltool"),
            args=runner_config.get("args", ()),
            docker=runner_config.get("docker", True),
            timeout=runner_config.get("timeout"),
            backend=backend_class(**backend_config.config),
        )

    def get_command(
        self, document: str, values: str, outdir: str
    ) -> MutableSequence[str]:
        command = [*self.command, *self.args, "--outdir", os.path.abspath(outdir)]
        if not self.docker:
            command.append("--no-container")
        command.extend([os.path.abspath(document), os.path.abspath(values)])
        return command

    async def run(
        self,
        document: str,
        values: str,
        outdir: str,
        job_name: str | None = None,
    ) -> RunResult:
        job_name = job_name or random_name()
        command = self.get_command(document, values, outdir)
        command_line = shlex.join(command)
        if logger.isEnabledFor(logging.INFO):
            logger.info(f"DISPATCHING job {job_name}")
        stdout, stderr, returncode = await self.backend.run(
            command=command, workdir=outdir, job_name=job_name, timeout=self.timeout
        )
        if returncode != 0:
            if logger.isEnabledFor(logging.ERROR):
                logger.error(f"FAILED job {job_name} with exit code {returncode}")
            raise RunnerFailure(
                f"Runner exited with code {returncode} for job {job_name}",
                command=command_line,
                returncode=returncode,
                logs=stderr,
            )
        try:
            output = parse_outputs(stdout)
        except ValueError as e:
            raise RunnerFailure(
                f"Runner produced no parsable output for job {job_name}: {e}",
                command=command_line,
                returncode=returncode,
                logs=stderr,
            ) from e
        if logger.isEnabledFor(logging.INFO):
            logger.info(f"COMPLETED job {job_name}")
        return RunResult(command=command_line, output=output, logs=stderr)


async def run_process(
    process: AbstractProcess,
    outdir: str,
    runner: CWLRunner | None = None,
    prefix: str | None = None,
) -> RunResult:
    """Write the documents of ``process`` into ``outdir`` and run them there."""
    runner = runner or CWLRunner()
    document, values = write_cwl(process, outdir, prefix)
    return await runner.run(
        document, values, outdir, job_name=prefix or process.id or None
    )
