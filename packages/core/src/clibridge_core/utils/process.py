"""Run an external CLI as a child process and stream its stdout.

run_command() is the single place where clibridge spawns processes. It
guarantees, for every call:
  - one OS process, always reaped before returning or raising
  - stdout delivered to ``on_output`` in arrival order, each byte exactly once
  - stdout accumulated up to ``max_output_bytes``; past that the child is killed
  - stderr drained concurrently so a chatty child can never deadlock on a full pipe
  - the child killed if the caller's ``cancel_event`` is set
"""

from __future__ import annotations

import codecs
import logging
import shutil
import subprocess
import threading
from typing import Optional

from clibridge_core.errors import CommandCancelled, ExitError, OutputTooLarge, SpawnError
from clibridge_core.models import ProgressCallback
from clibridge_core.utils.env import allowed_env

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_CHUNK_SIZE = 64 * 1024
_STDERR_TAIL_BYTES = 64 * 1024
_CANCEL_POLL_SECONDS = 0.1


def run_command(
    binary: str,
    args: list[str],
    *,
    stdin_payload: Optional[str] = None,
    on_output: Optional[ProgressCallback] = None,
    cwd: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Run ``binary args...`` and return its full stdout as text.

    Raises SpawnError if the binary cannot be started, OutputTooLarge if stdout
    passes ``max_output_bytes``, CommandCancelled if ``cancel_event`` fires, and
    ExitError (carrying the stderr tail) on a non-zero exit status.
    """
    child_env = allowed_env() if env is None else env
    # Resolve against the child's PATH so Windows .cmd shims are found too.
    executable = shutil.which(binary, path=child_env.get("PATH")) or binary
    logger.debug("Spawning %s with %d args (cwd=%s)", binary, len(args), cwd)

    try:
        proc = subprocess.Popen(
            [executable, *args],
            stdin=subprocess.PIPE if stdin_payload is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=child_env,
        )
    except OSError as e:
        logger.error("Failed to start %s: %s", binary, e)
        raise SpawnError(f"Failed to start {binary}: {e}") from e

    stderr_buf = bytearray()
    cancelled = threading.Event()
    threads = [threading.Thread(target=_drain_stderr, args=(proc, stderr_buf), daemon=True)]
    if stdin_payload is not None:
        threads.append(threading.Thread(target=_feed_stdin, args=(proc, stdin_payload), daemon=True))
    if cancel_event is not None:
        threads.append(threading.Thread(target=_watch_cancel, args=(proc, cancel_event, cancelled), daemon=True))
    for t in threads:
        t.start()

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    chunks: list[str] = []
    total = 0
    exceeded = False
    try:
        while True:
            data = proc.stdout.read1(_CHUNK_SIZE)
            if not data:
                break
            total += len(data)
            if total > max_output_bytes:
                exceeded = True
                proc.kill()
                break
            _emit(decoder.decode(data), chunks, on_output)
        if not exceeded:
            _emit(decoder.decode(b"", final=True), chunks, on_output)
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait()
        for t in threads:
            t.join(timeout=5)
        proc.stdout.close()
        if proc.stderr:
            proc.stderr.close()

    if cancelled.is_set():
        raise CommandCancelled(f"{binary} was cancelled")
    if exceeded:
        logger.error("%s output exceeded %d bytes; process killed", binary, max_output_bytes)
        raise OutputTooLarge(max_output_bytes)
    if proc.returncode != 0:
        stderr_tail = stderr_buf.decode("utf-8", errors="replace").strip()
        logger.error("%s exited with code %d", binary, proc.returncode)
        raise ExitError(proc.returncode, stderr_tail)

    return "".join(chunks)


def _emit(text: str, chunks: list[str], on_output: Optional[ProgressCallback]) -> None:
    if not text:
        return
    chunks.append(text)
    if on_output is not None:
        on_output(text)


def _drain_stderr(proc: subprocess.Popen, buf: bytearray) -> None:
    for data in iter(lambda: proc.stderr.read1(_CHUNK_SIZE), b""):
        buf.extend(data)
        if len(buf) > _STDERR_TAIL_BYTES:
            del buf[: len(buf) - _STDERR_TAIL_BYTES]


def _feed_stdin(proc: subprocess.Popen, payload: str) -> None:
    try:
        proc.stdin.write(payload.encode("utf-8"))
        proc.stdin.close()
    except (BrokenPipeError, OSError) as e:
        # The child exited before consuming its input; its exit status tells the story.
        logger.debug("stdin write interrupted: %s", e)


def _watch_cancel(proc: subprocess.Popen, cancel_event: threading.Event, cancelled: threading.Event) -> None:
    while proc.poll() is None:
        if cancel_event.wait(_CANCEL_POLL_SECONDS):
            if proc.poll() is None:
                cancelled.set()
                proc.kill()
            return
