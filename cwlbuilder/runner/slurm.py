from __future__ import annotations

import logging
import os
import shlex
from collections.abc import MutableSequence
from importlib.resources import files

from jinja2 import Template

from cwlbuilder.core.utils import format_seconds_to_hhmmss, get_option
from cwlbuilder.log_handler import logger
from cwlbuilder.runner.base import Backend
from cwlbuilder.runner.local import LocalBackend


class SlurmBackend(Backend):
    """
    Submits each runner invocation as a Slurm batch job.

    Jobs are submitted with ``sbatch --wait``, so that the exit code of ``sbatch`` is the one of
    the job. The job streams are collected from the ``<job_name>.out`` and ``<job_name>.err``
    files in the working directory, which must be on a file system shared with the compute nodes.
    """

    def __init__(
        self,
        account: str | None = None,
        cpusPerTask: int | None = None,
        mem: str | None = None,
        partition: str | None = None,
        qos: str | None = None,
        prologue: str | None = None,
        template: str | None = None,
    ):
        self.account: str | None = account
        self.cpusPerTask: int | None = cpusPerTask
        self.mem: str | None = mem
        self.partition: str | None = partition
        self.qos: str | None = qos
        self.prologue: str | None = prologue
        if template is not None:
            with open(template) as t:
                self.template: Template = Template(t.read())
        else:
            self.template: Template = Template(
                files(__package__)
                .joinpath("templates")
                .joinpath("slurm.jinja2")
                .read_text("utf-8")
            )
        self.connector: LocalBackend = LocalBackend()

    @classmethod
    def get_schema(cls) -> str:
        return (
            files(__package__)
            .joinpath("schemas")
            .joinpath("slurm.json")
            .read_text("utf-8")
        )

    def get_batch_command(
        self, script: str, workdir: str, job_name: str, timeout: int | None = None
    ) -> MutableSequence[str]:
        return [
            "sbatch",
            "--parsable",
            "--wait",
            *get_option("job-name", job_name),
            *get_option("chdir", workdir),
            *get_option("output", os.path.join(workdir, f"{job_name}.out")),
            *get_option("error", os.path.join(workdir, f"{job_name}.err")),
            *get_option("account", self.account),
            *get_option("cpus-per-task", self.cpusPerTask),
            *get_option("mem", self.mem),
            *get_option("partition", self.partition),
            *get_option("qos", self.qos),
            *get_option(
                "time", format_seconds_to_hhmmss(timeout) if timeout else None
            ),
            script,
        ]

    async def run(
        self,
        command: MutableSequence[str],
        workdir: str,
        job_name: str,
        timeout: int | None = None,
    ) -> tuple[str, str, int]:
        os.makedirs(workdir, exist_ok=True)
        script = os.path.join(workdir, f"{job_name}.sh")
        with open(script, "w") as f:
            f.write(
                self.template.render(
                    command=shlex.join(command),
                    workdir=shlex.quote(workdir),
                    prologue=self.prologue,
                )
            )
        if logger.isEnabledFor(logging.INFO):
            logger.info(f"SUBMITTING job {job_name} to Slurm")
        stdout, stderr, returncode = await self.connector.run(
            command=self.get_batch_command(script, workdir, job_name, timeout),
            workdir=workdir,
            job_name=job_name,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Job {job_name} has Slurm id {stdout.strip().split(';')[0]}")
        job_stdout, job_stderr = "", stderr
        if os.path.exists(out_path := os.path.join(workdir, f"{job_name}.out")):
            with open(out_path) as f:
                job_stdout = f.read()
        if os.path.exists(err_path := os.path.join(workdir, f"{job_name}.err")):
            with open(err_path) as f:
                job_stderr = f.read() + stderr
        return job_stdout, job_stderr, returncode
