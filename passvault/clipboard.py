"""Copying secrets to the clipboard and clearing them again later.

Clearing is done by a detached copy of this program (`passvault unclip`)
which outlives the command that copied the secret. It is handed the sha256
of what was copied and only clears the clipboard if it still holds exactly
that, so anything the user copied in the meantime is left alone.
"""

import os
import subprocess
import sys
import time
from typing import Callable, List, Optional

import pyperclip

from passvault.errors import ClipFailed, HashMismatch, PasteFailed
from passvault.log import get_logger
from passvault.utils import sha

HASH_VARIABLE = "PASSVAULT_UNCLIP_HASH"
READY = b"ready"

logger = get_logger(__name__)


class PyperclipClipboard:
    def set(self: "PyperclipClipboard", text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ClipFailed() from exc

    def get(self: "PyperclipClipboard") -> str:
        try:
            return pyperclip.paste()
        except pyperclip.PyperclipException as exc:
            raise PasteFailed() from exc

    def clear(self: "PyperclipClipboard") -> None:
        self.set("")


def unclip_command(timeout: int, force: bool = False) -> List[str]:
    command = [sys.executable, "-m", "passvault", "unclip", str(timeout)]
    if force:
        command.append("--force")
    return command


def spawn_unclip(
    contents_hash: str,
    timeout: int,
    force: bool = False,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
) -> int:
    """Start the clearing daemon and wait until it reports being ready."""
    env = dict(os.environ)
    env[HASH_VARIABLE] = contents_hash
    process = popen(
        unclip_command(timeout, force),
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        start_new_session=True,
    )
    line = process.stdout.readline().strip()
    process.stdout.close()
    if line != READY:
        logger.warning("Clipboard daemon did not start (got %r)", line)
        raise ClipFailed()
    logger.debug("Clipboard daemon %d will clear in %ds", process.pid, timeout)
    # the daemon outlives us; mark it reaped so Popen does not warn on exit
    process.returncode = 0
    return process.pid


def clip(
    contents: str,
    timeout: int,
    force: bool = False,
    clipboard: Optional[PyperclipClipboard] = None,
    spawn: Callable[..., int] = spawn_unclip,
) -> None:
    clipboard = clipboard or PyperclipClipboard()
    clipboard.set(contents)
    spawn(sha(contents), timeout, force)


class Unclipper:
    """The daemon half: waits, then clears if the clipboard is unchanged."""

    def __init__(
        self: "Unclipper",
        clipboard: Optional[PyperclipClipboard] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.clipboard = clipboard or PyperclipClipboard()
        self.sleep = sleep

    def run(
        self: "Unclipper", expected_hash: str, timeout: int, force: bool = False
    ) -> None:
        self.sleep(timeout)
        if not force and sha(self.clipboard.get()) != expected_hash:
            raise HashMismatch()
        self.clipboard.clear()
        logger.debug("Clipboard cleared")


def detach_stdout() -> None:
    """Tell the parent we are running, then let go of its pipe and terminal."""
    sys.stdout.buffer.write(READY + b"\n")
    sys.stdout.flush()
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())
    os.dup2(devnull, sys.stderr.fileno())
    os.close(devnull)
