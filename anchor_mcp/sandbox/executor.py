"""
Process Executor.

Runs a child process under a wall-clock deadline and captures its output.
On POSIX the child leads its own session, so expiry of the deadline takes down
the child together with everything it spawned. Whatever is still running in
that session when the child exits on its own is killed as well.
"""

import asyncio
import logging
import os
import signal
import time
from typing import Dict, List, Optional, Sequence, Union

import psutil

from .base import ExecutionOutcome, ExitStatus, truncate_output

logger = logging.getLogger("anchor_mcp.executor")

_POSIX = os.name == "posix"


async def _drain(stream: Optional[asyncio.StreamReader], buffer: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        buffer.extend(chunk)


async def _feed(stdin: Optional[asyncio.StreamWriter], text: str) -> None:
    if stdin is None:
        return
    try:
        stdin.write(text.encode("utf-8"))
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # Child exited without reading all of its input
        pass
    finally:
        stdin.close()


class ProcessExecutor:
    """Spawns child processes with an environment overlay and a deadline."""

    def __init__(self, max_output_bytes: int = 100 * 1024, kill_grace: float = 2.0, drain_timeout: float = 5.0):
        self.max_output_bytes = max_output_bytes
        self.kill_grace = kill_grace
        self.drain_timeout = drain_timeout

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Union[str, os.PathLike, None] = None,
        env_overlay: Optional[Dict[str, str]] = None,
        deadline: float = 60.0,
        stdin_text: Optional[str] = None,
    ) -> ExecutionOutcome:
        env = os.environ.copy()
        env.update(env_overlay or {})
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=None if cwd is None else str(cwd),
                env=env,
                stdin=asyncio.subprocess.PIPE if stdin_text is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as e:
            logger.info(f"Failed to spawn {command!r} in {cwd}: {e}")
            return ExecutionOutcome(
                stdout="",
                stderr="",
                status=ExitStatus.SPAWN_FAILED,
                exit_code=None,
                duration_ms=(time.monotonic() - start) * 1000,
                error=str(e),
            )

        logger.debug(f"Spawned pid={proc.pid}: {command} {' '.join(args)} (deadline {deadline}s)")
        stdout_buf = bytearray()
        stderr_buf = bytearray()
        io_tasks = [
            asyncio.create_task(_drain(proc.stdout, stdout_buf)),
            asyncio.create_task(_drain(proc.stderr, stderr_buf)),
        ]
        if stdin_text is not None:
            io_tasks.append(asyncio.create_task(_feed(proc.stdin, stdin_text)))

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=deadline)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"pid={proc.pid} exceeded its {deadline}s deadline, terminating process group")
            await self.terminate(proc)
        except asyncio.CancelledError:
            await self.terminate(proc)
            for task in io_tasks:
                task.cancel()
            raise
        else:
            # Background children of a finished job go with it
            self._reap_group(proc)

        # A descendant that escaped the group could keep the pipes open forever
        _, pending = await asyncio.wait(io_tasks, timeout=self.drain_timeout)
        for task in pending:
            task.cancel()

        duration_ms = (time.monotonic() - start) * 1000
        stdout, trunc_out = truncate_output(stdout_buf.decode("utf-8", errors="replace"), self.max_output_bytes)
        stderr, trunc_err = truncate_output(stderr_buf.decode("utf-8", errors="replace"), self.max_output_bytes)

        if timed_out:
            status = ExitStatus.TIMED_OUT
        elif proc.returncode == 0:
            status = ExitStatus.SUCCESS
        else:
            status = ExitStatus.NON_ZERO_EXIT

        return ExecutionOutcome(
            stdout=stdout,
            stderr=stderr,
            status=status,
            exit_code=proc.returncode,
            duration_ms=duration_ms,
            truncated=trunc_out or trunc_err,
        )

    async def terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Stop ``proc`` and all of its descendants: SIGTERM, grace period, SIGKILL."""
        descendants = self._descendants(proc.pid)

        self._signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            self._signal_group(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
            await proc.wait()

        survivors = []
        for child in descendants:
            try:
                child.kill()
                survivors.append(child)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning(f"Not permitted to kill descendant pid={child.pid} of pid={proc.pid}")
        if survivors:
            await asyncio.to_thread(psutil.wait_procs, survivors, timeout=self.kill_grace)

    @staticmethod
    def _descendants(pid: int) -> List[psutil.Process]:
        try:
            return psutil.Process(pid).children(recursive=True)
        except psutil.NoSuchProcess:
            return []

    @staticmethod
    def _reap_group(proc: asyncio.subprocess.Process) -> None:
        if not _POSIX:
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        except PermissionError as e:
            logger.warning(f"Could not kill leftover processes of pid={proc.pid}: {e}")
            return
        logger.info(f"Killed processes left behind by pid={proc.pid}")

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            if _POSIX:
                os.killpg(proc.pid, sig)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
