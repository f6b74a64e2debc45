from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import MutableSequence


class Backend(ABC):
    """Executes a runner command line somewhere and collects its streams."""

    @classmethod
    @abstractmethod
    def get_schema(cls) -> str: ...

    @abstractmethod
    async def run(
        self,
        command: MutableSequence[str],
        workdir: str,
        job_name: str,
        timeout: int | None = None,
    ) -> tuple[str, str, int]: ...
