import io
from pathlib import Path

import pytest
from rich.console import Console

from passvault.errors import UserAbort
from passvault.selection import (
    PAGE_LEN,
    Action,
    Event,
    Selection,
    Selector,
    State,
    decode,
    select_entry,
)

ENTRIES = [Path(f"/store/entry{i}.gpg") for i in range(25)]


def drive(*events):
    selector = Selector(ENTRIES)
    for event in events:
        selector.feed(event)
    return selector


def test_starts_browsing_on_first_entry():
    selector = Selector(ENTRIES)
    assert selector.state is State.BROWSING
    assert selector.index == 0


def test_moves_are_clamped():
    assert drive(Event.UP).index == 0
    assert drive(Event.DOWN, Event.DOWN).index == 2
    assert drive(Event.END, Event.DOWN).index == len(ENTRIES) - 1
    assert drive(Event.END, Event.HOME).index == 0


def test_pages():
    assert drive(Event.PAGE_DOWN).index == PAGE_LEN
    assert drive(Event.PAGE_DOWN, Event.PAGE_DOWN, Event.PAGE_DOWN).index == 24
    assert drive(Event.DOWN, Event.PAGE_UP).index == 0


@pytest.mark.parametrize(
    ("event", "action"),
    [(Event.SHOW, Action.SHOW), (Event.CLIP, Action.CLIP), (Event.EDIT, Action.EDIT)],
)
def test_selecting(event, action):
    selector = drive(Event.DOWN, event)
    assert selector.state is State.SELECTED
    assert selector.result() == Selection(ENTRIES[1], action)


def test_terminal_states_ignore_events():
    selector = drive(Event.SHOW, Event.DOWN, Event.CANCEL)
    assert selector.state is State.SELECTED
    assert selector.index == 0


def test_cancel_aborts():
    selector = drive(Event.DOWN, Event.CANCEL)
    assert selector.state is State.CANCELLED
    with pytest.raises(UserAbort):
        selector.result()


def test_decode():
    assert decode("\x1b[A") is Event.UP
    assert decode("\x1b[6~") is Event.PAGE_DOWN
    assert decode("\n") is Event.SHOW
    assert decode("\x1b[D") is Event.CLIP
    assert decode("e") is Event.EDIT
    assert decode("q") is Event.CANCEL
    assert decode("x") is None


def test_select_entry_with_scripted_keys():
    keys = iter(["x", "\x1b[B", "\x1b[B", "\x1b[A", "\r"])
    console = Console(file=io.StringIO(), width=80, height=20)
    selection = select_entry(ENTRIES, Path("/store"), console, lambda: next(keys))
    assert selection == Selection(ENTRIES[1], Action.SHOW)
