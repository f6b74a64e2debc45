from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable, MutableMapping, MutableSequence
from typing import Any

import psutil

from cwlbuilder.core.exception import (
    CWLBuilderException,
    JobCancelled,
    NotFound,
    RunnerFailure,
    ValidationError,
)
from cwlbuilder.core.utils import dict_zip
from cwlbuilder.cwl.parameter import check_id
from cwlbuilder.cwl.process import AbstractProcess
from cwlbuilder.log_handler import logger
from cwlbuilder.runner.dispatcher import CWLRunner, RunResult, run_process


class JobResult:
    __slots__ = ("index", "key", "inputs", "result", "error", "status")

    def __init__(
        self,
        index: int,
        key: str,
        inputs: MutableMapping[str, Any],
        result: RunResult | None = None,
        error: CWLBuilderException | None = None,
        status: str = "COMPLETED",
    ):
        self.index: int = index
        self.key: str = key
        self.inputs: MutableMapping[str, Any] = inputs
        self.result: RunResult | None = result
        self.error: CWLBuilderException | None = error
        self.status: str = status

    def __repr__(self) -> str:
        return f"JobResult(index={self.index}, key={self.key!r}, status={self.status})"

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchDispatcher:
    """
    Runs one process over many sets of input values.

    Each job runs in its own sub-directory of ``outdir`` and fills its own result slot, so a
    failing job never affects its siblings. At most ``workers`` jobs run at the same time.
    """

    def __init__(
        self,
        process: AbstractProcess,
        runner: CWLRunner | None = None,
        workers: int | None = None,
        outdir: str = ".",
    ):
        if workers is not None and workers < 1:
            raise ValidationError(
                f"The number of workers must be positive, got {workers}"
            )
        self.process: AbstractProcess = process
        self.runner: CWLRunner = runner or CWLRunner()
        self.workers: int = workers or psutil.cpu_count() or 1
        self.outdir: str = outdir
        self._cancelled: asyncio.Event = asyncio.Event()

    def _get_jobs(
        self,
        inputs: MutableMapping[str, Iterable[Any]],
        params: MutableMapping[str, Any] | None,
    ) -> MutableSequence[MutableMapping[str, Any]]:
        inputs = {k: list(v) for k, v in inputs.items()}
        for id in list(inputs.keys()) + list((params or {}).keys()):
            if id not in self.process.inputs:
                raise NotFound(
                    f"Process `{self.process.id}` has no input `{id}`: "
                    f"declared inputs are {self.process.inputs.ids()}"
                )
        try:
            return [(params or {}) | job for job in dict_zip(**inputs)]
        except ValueError:
            raise ValidationError(
                "All batch inputs must have the same number of values, got "
                + ", ".join(f"{k}: {len(v)}" for k, v in inputs.items())
            ) from None

    async def _run_job(
        self,
        semaphore: asyncio.Semaphore,
        lock: asyncio.Lock,
        results: MutableSequence[JobResult | None],
        index: int,
        key: str,
        values: MutableMapping[str, Any],
    ) -> None:
        async with semaphore:
            job = JobResult(index=index, key=key, inputs=values)
            if self._cancelled.is_set():
                job.error = JobCancelled(f"Job {key} cancelled before starting")
                job.status = "CANCELLED"
                if logger.isEnabledFor(logging.WARNING):
                    logger.warning(f"CANCELLED job {key}")
            else:
                try:
                    process = self.process.copy()
                    process.clear_values()
                    process.set_values(values)
                    job.result = await run_process(
                        process,
                        os.path.join(self.outdir, key),
                        self.runner,
                        prefix=process.id or "main",
                    )
                except CWLBuilderException as e:
                    self._fail(job, e)
                except Exception as e:
                    failure = RunnerFailure(f"Job {key} failed: {e!r}")
                    failure.__cause__ = e
                    self._fail(job, failure)
        async with lock:
            results[index] = job

    def _fail(self, job: JobResult, error: CWLBuilderException) -> None:
        job.error = error
        job.status = "FAILED"
        if logger.isEnabledFor(logging.ERROR):
            logger.error(f"FAILED job {job.key}: {error}")

    def cancel(self) -> None:
        """Prevent jobs of the current batch that have not started yet from starting."""
        self._cancelled.set()

    async def run(
        self,
        inputs: MutableMapping[str, Iterable[Any]],
        params: MutableMapping[str, Any] | None = None,
        keys: Iterable[str] | None = None,
    ) -> MutableSequence[JobResult]:
        jobs = self._get_jobs(inputs, params)
        keys = (
            [str(k) for k in keys]
            if keys is not None
            else [str(i) for i in range(len(jobs))]
        )
        if len(keys) != len(jobs):
            raise ValidationError(f"Got {len(keys)} job keys for {len(jobs)} jobs")
        if len(set(keys)) != len(keys):
            raise ValidationError("Job keys must be unique")
        for key in keys:
            check_id(key, "job key")
        self._cancelled.clear()
        if logger.isEnabledFor(logging.INFO):
            logger.info(
                f"DISPATCHING {len(jobs)} jobs of `{self.process.id}` on {self.workers} workers"
            )
        results: MutableSequence[JobResult | None] = [None] * len(jobs)
        semaphore = asyncio.Semaphore(self.workers)
        lock = asyncio.Lock()
        await asyncio.gather(
            *(
                asyncio.create_task(
                    self._run_job(semaphore, lock, results, index, key, values)
                )
                for index, (key, values) in enumerate(zip(keys, jobs))
            )
        )
        if logger.isEnabledFor(logging.INFO):
            failed = sum(1 for r in results if not r.ok)
            logger.info(
                f"COMPLETED {len(jobs) - failed} of {len(jobs)} jobs of `{self.process.id}`"
            )
        return results
