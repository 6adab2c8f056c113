import io
import shutil
from pathlib import Path
from typing import Dict, List

import pygit2
import pytest
from rich.console import Console

from passvault.config import Config
from passvault.crypto.keyring import Keyring
from passvault.store import PasswordStore


class ScriptedPrompter:
    """Answers prompts from queues filled by the test."""

    def __init__(self: "ScriptedPrompter") -> None:
        self.secrets: List[str] = []
        self.lines: List[str] = []
        self.confirms: List[bool] = []
        self.asked: List[str] = []

    def secret(self: "ScriptedPrompter", prompt: str) -> str:
        self.asked.append(prompt)
        return self.secrets.pop(0)

    def line(self: "ScriptedPrompter", prompt: str) -> str:
        self.asked.append(prompt)
        return self.lines.pop(0)

    multiline = line

    def confirm(self: "ScriptedPrompter", question: str) -> bool:
        self.asked.append(question)
        return self.confirms.pop(0)


class FakeClipboard:
    def __init__(self: "FakeClipboard", contents: str = "") -> None:
        self.contents = contents

    def set(self: "FakeClipboard", text: str) -> None:
        self.contents = text

    def get(self: "FakeClipboard") -> str:
        return self.contents

    def clear(self: "FakeClipboard") -> None:
        self.contents = ""


@pytest.fixture(scope="session")
def key_files(tmp_path_factory) -> Dict[str, Path]:
    """Armored secret keys for alice and bob, generated once per run."""
    directory = tmp_path_factory.mktemp("generated-keys")
    keyring = Keyring(directory)
    files = {}
    for name in ("alice", "bob"):
        fingerprint = keyring.generate(name.title(), f"{name}@example.com", size=2048)
        files[name] = directory / f"{fingerprint}.asc"
    return files


@pytest.fixture(scope="session")
def fingerprints(key_files) -> Dict[str, str]:
    return {name: path.stem for name, path in key_files.items()}


@pytest.fixture
def make_keyring(tmp_path, key_files):
    def factory(*names: str) -> Keyring:
        directory = tmp_path / ("keyring-" + "-".join(names))
        directory.mkdir(exist_ok=True)
        for name in names:
            shutil.copy(key_files[name], directory / key_files[name].name)
        return Keyring(directory)

    return factory


@pytest.fixture
def keyring(make_keyring) -> Keyring:
    return make_keyring("alice", "bob")


@pytest.fixture
def store_dir(tmp_path) -> Path:
    """An empty store directory holding a git repository with an identity."""
    directory = tmp_path / "store"
    directory.mkdir()
    repo = pygit2.init_repository(str(directory))
    repo.config["user.name"] = "Pass Tester"
    repo.config["user.email"] = "tester@example.com"
    return directory


@pytest.fixture
def config(tmp_path, store_dir) -> Config:
    return Config(
        store_dir=store_dir,
        home=str(tmp_path),
        keyring_dir=tmp_path / "keyring-alice-bob",
        editor="true",
    )


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), record=True, width=200)


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def spawned() -> List[tuple]:
    return []


@pytest.fixture
def store(config, keyring, prompter, console, clipboard, spawned, fingerprints):
    """A store initialised for alice."""

    def spawn(contents_hash, timeout, force=False):
        spawned.append((contents_hash, timeout, force))
        return 0

    password_store = PasswordStore(
        config,
        keyring,
        prompter=prompter,
        console=console,
        clipboard_=clipboard,
        spawn=spawn,
    )
    password_store.init([fingerprints["alice"]])
    return password_store
