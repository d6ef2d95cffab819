"""
Child process handling: spawning, streaming stdout in chunks, termination.

Every chunk a child writes to stdout is echoed to the host's stdout as it
arrives and handed to a callback, which may ask to stop listening early.
"""
import codecs
import logging
import subprocess
import sys
import threading
from typing import Callable, Dict, List, Optional

from .extractor import EarlyExit

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
TERMINATE_GRACE = 5.0
ABORT_GRACE = 0.5


def spawn(argv: List[str], env: Dict[str, str], cwd: str) -> subprocess.Popen:
    """Start ``argv`` with stdout piped; stderr goes straight to the host."""
    log.debug(f"  Command: {' '.join(argv)}")
    log.debug(f"  cwd: {cwd}")
    return subprocess.Popen(
        argv,
        env=env,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=None,
        shell=False,
    )


def _new_decoder():
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


def _echo(text: str) -> None:
    if text:
        sys.stdout.write(text)
        sys.stdout.flush()


def stream_output(
    process: subprocess.Popen,
    on_chunk: Callable[[str], Optional[EarlyExit]],
) -> Optional[EarlyExit]:
    """
    Read ``process`` stdout until EOF or until ``on_chunk`` asks to stop.

    Args:
        process: Child started by ``spawn``
        on_chunk: Called with each decoded chunk, after it has been echoed

    Returns:
        The early exit requested by ``on_chunk``, or ``None`` at EOF
    """
    decoder = _new_decoder()
    while True:
        data = process.stdout.read1(CHUNK_SIZE)
        text = decoder.decode(data, final=not data)
        _echo(text)
        if text:
            early_exit = on_chunk(text)
            if early_exit:
                if early_exit is EarlyExit.CONTINUE:
                    drain_in_background(process, decoder)
                return early_exit
        if not data:
            return None


def drain_in_background(process: subprocess.Popen, decoder=None) -> threading.Thread:
    """Keep echoing a child's stdout after the runner stopped listening to it."""
    decoder = decoder or _new_decoder()

    def drain():
        try:
            while True:
                data = process.stdout.read1(CHUNK_SIZE)
                _echo(decoder.decode(data, final=not data))
                if not data:
                    break
        except (OSError, ValueError) as e:
            log.debug(f"  stopped draining pid {process.pid}: {e}")
        finally:
            process.wait()

    thread = threading.Thread(target=drain, name=f"pipet-drain-{process.pid}", daemon=True)
    thread.start()
    return thread


def _kill(process: subprocess.Popen) -> None:
    log.debug(f"  pid {process.pid} ignored SIGTERM, killing")
    process.kill()
    process.wait()


def terminate(process: subprocess.Popen, grace: float = TERMINATE_GRACE, background: bool = False) -> Optional[int]:
    """
    Stop ``process``: SIGTERM first, SIGKILL if it outlives ``grace`` seconds.

    With ``background`` the wait for SIGKILL happens in a daemon thread and
    the returncode may still be ``None`` when this returns.
    """
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=ABORT_GRACE if background else grace)
        except subprocess.TimeoutExpired:
            if background:
                killer = threading.Timer(grace, _kill, args=(process,))
                killer.daemon = True
                killer.start()
            else:
                _kill(process)
    if process.stdout:
        process.stdout.close()
    return process.returncode
