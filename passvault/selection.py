"""Interactive choice among several matching entries.

`Selector` is a pure state machine fed with `Event`s; reading keys from the
terminal and drawing the list are separate adapters so the machine can be
driven directly in tests.
"""

import enum
import os
import select
import sys
import termios
import tty
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from passvault.errors import UserAbort

PAGE_LEN = 10


class State(enum.Enum):
    BROWSING = "browsing"
    SELECTED = "selected"
    CANCELLED = "cancelled"


class Event(enum.Enum):
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    SHOW = "show"
    CLIP = "clip"
    EDIT = "edit"
    CANCEL = "cancel"


class Action(enum.Enum):
    SHOW = "show"
    CLIP = "clip"
    EDIT = "edit"


@dataclass
class Selection:
    path: Path
    action: Action


_ACTIONS = {Event.SHOW: Action.SHOW, Event.CLIP: Action.CLIP, Event.EDIT: Action.EDIT}


class Selector:
    def __init__(self: "Selector", entries: List[Path]) -> None:
        assert entries, "Nothing to select from."
        self.entries = entries
        self.index = 0
        self.state = State.BROWSING
        self.action: Optional[Action] = None

    @property
    def last(self: "Selector") -> int:
        return len(self.entries) - 1

    def feed(self: "Selector", event: Event) -> State:
        if self.state is not State.BROWSING:
            return self.state
        if event is Event.UP:
            self.index = max(self.index - 1, 0)
        elif event is Event.DOWN:
            self.index = min(self.index + 1, self.last)
        elif event is Event.PAGE_UP:
            self.index = max(self.index - PAGE_LEN, 0)
        elif event is Event.PAGE_DOWN:
            self.index = min(self.index + PAGE_LEN, self.last)
        elif event is Event.HOME:
            self.index = 0
        elif event is Event.END:
            self.index = self.last
        elif event is Event.CANCEL:
            self.state = State.CANCELLED
        else:
            self.action = _ACTIONS[event]
            self.state = State.SELECTED
        return self.state

    def result(self: "Selector") -> Selection:
        if self.state is State.CANCELLED:
            raise UserAbort()
        assert self.state is State.SELECTED and self.action is not None
        return Selection(self.entries[self.index], self.action)


KEYS = {
    "\x1b[A": Event.UP,
    "\x1b[B": Event.DOWN,
    "\x1b[C": Event.SHOW,
    "\x1b[D": Event.CLIP,
    "\x1b[5~": Event.PAGE_UP,
    "\x1b[6~": Event.PAGE_DOWN,
    "\x1b[H": Event.HOME,
    "\x1b[1~": Event.HOME,
    "\x1b[F": Event.END,
    "\x1b[4~": Event.END,
    "\n": Event.SHOW,
    "\r": Event.SHOW,
    "e": Event.EDIT,
    "q": Event.CANCEL,
    "\x1b": Event.CANCEL,
    "k": Event.UP,
    "j": Event.DOWN,
}


def decode(key: str) -> Optional[Event]:
    return KEYS.get(key)


def read_key() -> str:
    """One key press from stdin, with escape sequences kept whole."""
    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        key = os.read(fd, 1).decode()
        if key != "\x1b":
            return key
        # a lone escape is not followed by anything
        while select.select([fd], [], [], 0.05)[0]:
            key += os.read(fd, 1).decode()
            if len(key) > 2 and (key[-1].isalpha() or key[-1] == "~"):
                break
        return key
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


def render(selector: Selector, store_dir: Path, height: int) -> Panel:
    rows = max(height - 4, 1)
    top = min(max(selector.index - rows // 2, 0), max(len(selector.entries) - rows, 0))
    text = Text()
    for position in range(top, min(top + rows, len(selector.entries))):
        name = selector.entries[position].relative_to(store_dir).as_posix()
        name = name[: -len(".gpg")] if name.endswith(".gpg") else name
        style = "reverse bold" if position == selector.index else ""
        text.append(name + "\n", style=style)
    return Panel(
        text,
        title="Matches",
        subtitle="enter: show  left: copy  e: edit  q: quit",
    )


def select_entry(
    entries: List[Path],
    store_dir: Path,
    console: Optional[Console] = None,
    keys: Callable[[], str] = read_key,
) -> Selection:
    console = console or Console()
    selector = Selector(entries)
    with console.screen() as screen:
        while selector.state is State.BROWSING:
            screen.update(render(selector, store_dir, console.size.height))
            event = decode(keys())
            if event is not None:
                selector.feed(event)
    return selector.result()
