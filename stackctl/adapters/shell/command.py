"""
Command runner — the one place that spawns engine processes.

Provides a synchronous ``run`` (captured or attached to the terminal) and
a streaming ``stream`` that yields output lines as they arrive and returns
the completed process once the child exits. Runners never raise for
process-level problems: a missing binary comes back as exit code 127, a
timeout as 124, so callers only inspect the result.

The runtime client depends on the ``CommandRunner`` protocol, so tests
and ``--mock`` mode can substitute ``MockEngine``.
"""

from __future__ import annotations

import logging
import os
import selectors
import shutil
import subprocess
from collections import deque
from collections.abc import Generator, Mapping
from pathlib import Path
from typing import Protocol

from stackctl.core.cancellation import CancelToken

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124

# How often a streaming read wakes up to check for cancellation
STREAM_POLL_SECONDS = 0.5
READ_CHUNK_BYTES = 65536

# stderr kept for the completed process of a stream
STDERR_TAIL_LINES = 20


class CommandRunner(Protocol):
    """What the runtime client needs from a process launcher."""

    def which(self, program: str) -> bool: ...

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        interactive: bool = False,
    ) -> subprocess.CompletedProcess[str]: ...

    def stream(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> Generator[str, None, subprocess.CompletedProcess[str]]: ...


class SubprocessRunner:
    """CommandRunner backed by the real ``subprocess`` module."""

    def which(self, program: str) -> bool:
        return shutil.which(program) is not None

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        interactive: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``argv`` and return the completed process.

        ``interactive`` attaches the child to this terminal (shells,
        ``exec`` without capture); stdout/stderr are then empty.
        """
        logger.debug("Executing: %s (cwd=%s)", argv, cwd)
        try:
            if interactive:
                result = subprocess.run(argv, cwd=str(cwd), env=env, timeout=timeout)
                return subprocess.CompletedProcess(argv, result.returncode, "", "")
            return subprocess.run(
                argv,
                cwd=str(cwd),
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            return subprocess.CompletedProcess(argv, EXIT_NOT_FOUND, "", f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            return subprocess.CompletedProcess(argv, EXIT_TIMEOUT, "", f"Command timed out after {timeout}s")

    def stream(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> Generator[str, None, subprocess.CompletedProcess[str]]:
        """Run ``argv`` and yield stdout/stderr lines in real time.

        Both pipes are unbuffered and read with ``os.read`` through a
        selector, so a line is yielded as soon as its newline arrives and
        neither pipe can fill up and deadlock the child. The selector wakes
        every STREAM_POLL_SECONDS to check ``cancel``; a cancelled stream
        kills the child and stops.

        The generator's return value is the completed process, carrying
        the exit code and the last STDERR_TAIL_LINES lines of stderr.
        """
        logger.debug("Streaming command: %s (cwd=%s)", argv, cwd)
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except FileNotFoundError:
            return subprocess.CompletedProcess(argv, EXIT_NOT_FOUND, "", f"{argv[0]}: command not found")

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        partial: dict[int, bytes] = {}
        sel = selectors.DefaultSelector()
        try:
            sel.register(proc.stdout, selectors.EVENT_READ, False)  # type: ignore[arg-type]
            sel.register(proc.stderr, selectors.EVENT_READ, True)  # type: ignore[arg-type]

            while sel.get_map():
                if cancel is not None and cancel.cancelled:
                    logger.debug("Stream cancelled: %s", argv)
                    break
                for key, _ in sel.select(timeout=STREAM_POLL_SECONDS):
                    chunk = os.read(key.fd, READ_CHUNK_BYTES)
                    pending = partial.pop(key.fd, b"") + chunk
                    if chunk:
                        *complete, rest = pending.split(b"\n")
                        if rest:
                            partial[key.fd] = rest
                    else:
                        # EOF: flush an unterminated last line
                        sel.unregister(key.fileobj)
                        complete = [pending] if pending else []
                    for raw in complete:
                        line = raw.rstrip(b"\r").decode("utf-8", errors="replace")
                        if key.data:
                            stderr_tail.append(line)
                        yield line
        finally:
            sel.close()
            if proc.poll() is None:
                proc.kill()
            proc.wait()
            for pipe in (proc.stdout, proc.stderr):
                if pipe:
                    pipe.close()
            logger.debug("Stream ended with exit code %s", proc.returncode)

        return subprocess.CompletedProcess(argv, proc.returncode, "", "\n".join(stderr_tail))
