"""
Base process interfaces for running the package tool.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessResult:
    """Fully buffered output of one package tool invocation."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class SpawnedProcess(ABC):
    """A started child process with readable output streams."""

    stdout: asyncio.StreamReader | None
    stderr: asyncio.StreamReader | None

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""


class ProcessSpawner(ABC):
    """
    Abstract capability for starting child processes.

    Implementations raise ``OSError`` when the executable cannot be launched.
    """

    @abstractmethod
    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> SpawnedProcess:
        """
        Start ``command`` with ``args``.

        Args:
            command: Executable path
            args: Arguments, not including the executable
            env: Full environment for the child, or None to inherit

        Returns:
            The running process
        """
        pass


class _AsyncioProcess(SpawnedProcess):
    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self.stdout = process.stdout
        self.stderr = process.stderr

    async def wait(self) -> int:
        return await self._process.wait()


class AsyncioProcessSpawner(ProcessSpawner):
    """Spawn processes with ``asyncio.create_subprocess_exec``."""

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> SpawnedProcess:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )
        return _AsyncioProcess(process)
