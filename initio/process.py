"""
External process execution with timeout and cancellation.

Every invocation of winget or PowerShell goes through ProcessRunner. A
timeout or a cancellation kills the whole process tree, since installers
routinely spawn child processes that outlive their parent.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import sys
import threading
import time
from typing import Callable, Sequence

import psutil

from .common import vlog
from .errors import OperationCancelled, ProcessLaunchFailure, ProcessTimeout
from .models import ProcessResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
KILL_WAIT_SECONDS = 5.0
PIPE_DRAIN_SECONDS = 1.0


class CancellationToken:
    """
    Run-scoped cancellation signal.

    Checked before each item starts and polled by the runner while a
    process is alive, so cancelling also kills the active process.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True early if cancelled."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def _kill_all(procs: list[psutil.Process]) -> None:
    for proc in procs:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.debug(f"Could not kill pid {proc.pid}: {e}")

    _, alive = psutil.wait_procs(procs, timeout=KILL_WAIT_SECONDS)
    for proc in alive:
        logger.warning(f"Process {proc.pid} still alive after kill")


def kill_process_tree(pid: int) -> None:
    """
    Kill a process and all of its descendants.

    Args:
        pid: Root process id
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        procs = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        procs = []
    procs.append(parent)
    _kill_all(procs)


class _ProcessTree:
    """
    A launched process plus every descendant seen while it ran.

    Descendants re-parented after the root exits are no longer reachable
    through the root, so they are remembered from earlier snapshots. On
    POSIX the root leads its own session and the whole process group is
    signalled as well.
    """

    def __init__(self, process: subprocess.Popen, own_group: bool):
        self.pid = process.pid
        self.own_group = own_group
        self.descendants: dict[int, psutil.Process] = {}
        try:
            self.root: psutil.Process | None = psutil.Process(process.pid)
        except psutil.NoSuchProcess:
            self.root = None

    def refresh(self) -> None:
        if self.root is None:
            return
        try:
            children = self.root.children(recursive=True)
        except psutil.Error:
            return
        for child in children:
            self.descendants.setdefault(child.pid, child)

    def kill(self) -> None:
        self.refresh()
        procs = list(self.descendants.values())
        if self.root is not None:
            procs.append(self.root)
        _kill_all(procs)
        if self.own_group:
            try:
                os.killpg(self.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError) as e:
                logger.debug(f"Could not signal process group {self.pid}: {e}")


def _pump(stream, name: str, sink: queue.Queue) -> None:
    try:
        for line in stream:
            sink.put((name, line))
    except ValueError:
        # Stream closed underneath us after a kill
        pass
    finally:
        sink.put((name, None))


class ProcessRunner:
    """
    Runs external executables and captures their output.

    Attributes:
        default_timeout: Timeout used when a call passes none
        poll_interval: How often the wait loop checks deadline and cancellation
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = 0.1,
        verbose: bool = False,
    ):
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval
        self.verbose = verbose

    def run(
        self,
        executable: str,
        arguments: Sequence[str],
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ProcessResult:
        """
        Run a process to completion.

        Args:
            executable: Program to launch
            arguments: Argument list (no shell interpretation)
            timeout: Seconds before the process tree is killed
            cancel: Run-level cancellation token

        Returns:
            ProcessResult with the full stdout/stderr text

        Raises:
            ProcessLaunchFailure: If the executable cannot start
            ProcessTimeout: If the timeout elapses first
            OperationCancelled: If the token fires first
        """
        return self._execute(executable, arguments, timeout, cancel, None)

    def run_lines(
        self,
        executable: str,
        arguments: Sequence[str],
        on_line: Callable[[str], None],
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ProcessResult:
        """
        Run a process, reporting each output line as it arrives.

        on_line is always called from the thread that called run_lines,
        never from the stream reader threads. If on_line raises, the
        process tree is killed and the exception propagates.
        """
        return self._execute(executable, arguments, timeout, cancel, on_line)

    def _execute(
        self,
        executable: str,
        arguments: Sequence[str],
        timeout: float | None,
        cancel: CancellationToken | None,
        on_line: Callable[[str], None] | None,
    ) -> ProcessResult:
        if cancel is not None:
            cancel.raise_if_cancelled()

        effective_timeout = self.default_timeout if timeout is None else timeout
        command = [executable, *arguments]
        vlog(f"Executing: {' '.join(command)} (timeout {effective_timeout:g}s)", self.verbose)

        popen_kwargs: dict = {}
        if sys.platform == "win32":
            popen_kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        else:
            popen_kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **popen_kwargs,
            )
        except OSError as e:
            raise ProcessLaunchFailure(executable, str(e)) from e

        tree = _ProcessTree(process, own_group=sys.platform != "win32")
        lines: queue.Queue = queue.Queue()
        captured: dict[str, list[str]] = {"stdout": [], "stderr": []}
        readers = [
            threading.Thread(target=_pump, args=(process.stdout, "stdout", lines), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, "stderr", lines), daemon=True),
        ]
        for reader in readers:
            reader.start()

        def consume(name: str, line: str) -> None:
            captured[name].append(line)
            if on_line is not None:
                on_line(line.rstrip("\r\n"))

        def timed_out() -> ProcessTimeout:
            return ProcessTimeout(
                executable,
                effective_timeout,
                stdout="".join(captured["stdout"]),
                stderr="".join(captured["stderr"]),
            )

        deadline = time.monotonic() + effective_timeout
        drain_deadline = 0.0
        exit_code: int | None = None
        open_streams = 2

        try:
            while open_streams:
                if cancel is not None and cancel.cancelled:
                    raise OperationCancelled(f"{executable} cancelled")

                now = time.monotonic()
                if exit_code is None:
                    exit_code = process.poll()
                    if exit_code is None:
                        tree.refresh()
                        if now >= deadline:
                            raise timed_out()
                    else:
                        drain_deadline = now + PIPE_DRAIN_SECONDS
                elif now >= drain_deadline:
                    # Parent is gone but leftovers still hold the output pipes
                    vlog(f"{executable} exited; killing processes still holding its output", self.verbose)
                    tree.kill()
                    break

                try:
                    name, line = lines.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue

                if line is None:
                    open_streams -= 1
                    continue

                consume(name, line)
                if exit_code is not None and time.monotonic() < deadline:
                    drain_deadline = time.monotonic() + PIPE_DRAIN_SECONDS

            if exit_code is None:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    exit_code = process.wait(timeout=remaining or self.poll_interval)
                except subprocess.TimeoutExpired:
                    raise timed_out()
        except BaseException:
            self._terminate(process, tree)
            raise
        finally:
            for reader in readers:
                reader.join(timeout=1.0)

        while True:
            try:
                name, line = lines.get_nowait()
            except queue.Empty:
                break
            if line is not None:
                consume(name, line)

        result = ProcessResult(
            exit_code=exit_code,
            stdout="".join(captured["stdout"]),
            stderr="".join(captured["stderr"]),
        )
        vlog(f"{executable} exited with code {exit_code}", self.verbose)
        return result

    def _terminate(self, process: subprocess.Popen, tree: _ProcessTree) -> None:
        vlog(f"Killing process tree of pid {process.pid}", self.verbose)
        tree.kill()
        try:
            process.wait(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} did not exit after kill")
