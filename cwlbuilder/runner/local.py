from __future__ import annotations

import asyncio
import logging
import os
import shlex
from collections.abc import MutableMapping, MutableSequence
from importlib.resources import files

from cwlbuilder.core.exception import RunnerFailure
from cwlbuilder.log_handler import logger
from cwlbuilder.runner.base import Backend


async def _read(stream: asyncio.StreamReader, buffer: bytearray) -> None:
    while chunk := await stream.read(65536):
        buffer.extend(chunk)


class LocalBackend(Backend):
    def __init__(self, environment: MutableMapping[str, str] | None = None):
        self.environment: MutableMapping[str, str] = dict(environment or {})

    @classmethod
    def get_schema(cls) -> str:
        return (
            files(__package__)
            .joinpath("schemas")
            .joinpath("local.json")
            .read_text("utf-8")
        )

    async def run(
        self,
        command: MutableSequence[str],
        workdir: str,
        job_name: str,
        timeout: int | None = None,
    ) -> tuple[str, str, int]:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"EXECUTING command {shlex.join(command)} for job {job_name}")
        os.makedirs(workdir, exist_ok=True)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ | self.environment if self.environment else None,
            )
        except OSError as e:
            raise RunnerFailure(
                f"Cannot start job {job_name}: {e}", command=shlex.join(command)
            ) from e
        stdout, stderr = bytearray(), bytearray()
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _read(proc.stdout, stdout), _read(proc.stderr, stderr), proc.wait()
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RunnerFailure(
                f"Job {job_name} timed out after {timeout} seconds",
                command=shlex.join(command),
                logs=stderr.decode("utf-8", errors="replace"),
            ) from None
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise
        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            proc.returncode,
        )
