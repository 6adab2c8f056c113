"""The user facing verbs of the password store.

Every mutating verb resolves its paths inside the store, writes through the
crypto gateway, recrypts whatever crossed a key domain boundary and ends with
exactly one commit.
"""

import getpass
import os
import re
import shlex
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.tree import Tree

from passvault import clipboard
from passvault.config import Config
from passvault.crypto.gateway import (
    CryptoGateway,
    EditMode,
    read_gpg_ids,
    write_atomic,
)
from passvault.crypto.keyring import Keyring
from passvault.errors import (
    ContentsUnchanged,
    InvalidConfiguration,
    InvalidPattern,
    LineDoesntExist,
    NoGpgIdFile,
    NoPrivateKeyFound,
    NotInStore,
    PathIsDir,
    RootGpgIdRemoval,
    SecretsDontMatch,
    SourceIsDestination,
    StdoutNotTty,
    StoreDoesntExist,
    UserAbort,
)
from passvault.git import CommitEngine, init_repository
from passvault.log import get_logger
from passvault.matching import find_single
from passvault.paths import (
    GPG_EXT,
    GPG_ID,
    PathResolver,
    closest_gpg_id,
    copy as copy_entry,
    iter_entries,
    remove_dirs_to_file,
    signature_path,
)
from passvault.recrypt import Recryptor
from passvault.selection import Action, Selection, select_entry
from passvault.tree import build_tree
from passvault.utils import generate_password

logger = get_logger(__name__)

GITATTRIBUTES = "*.gpg diff=gpg\n"


class ConsolePrompter:
    def __init__(self: "ConsolePrompter", console: Console) -> None:
        self.console = console

    def secret(self: "ConsolePrompter", prompt: str) -> str:
        return getpass.getpass(prompt)

    def line(self: "ConsolePrompter", prompt: str) -> str:
        return input(prompt)

    def multiline(self: "ConsolePrompter", prompt: str) -> str:
        self.console.print(prompt, markup=False, highlight=False)
        return sys.stdin.read()

    def confirm(self: "ConsolePrompter", question: str) -> bool:
        return Confirm.ask(escape(question), console=self.console, default=False)


def _with_signatures(paths: Sequence[Path]) -> List[Path]:
    return [p for path in paths for p in (path, signature_path(path))]


def _domain_keys(store_dir: Path, path: Path) -> List[str]:
    gpg_id = closest_gpg_id(store_dir, path)
    return read_gpg_ids(gpg_id) if gpg_id.is_file() else []


class PasswordStore:
    def __init__(
        self: "PasswordStore",
        config: Config,
        keyring: Keyring,
        prompter: Optional[ConsolePrompter] = None,
        console: Optional[Console] = None,
        clipboard_: Optional[clipboard.PyperclipClipboard] = None,
        spawn: Callable[..., int] = clipboard.spawn_unclip,
        select: Callable[..., Selection] = select_entry,
    ) -> None:
        self.config = config
        self.keyring = keyring
        self.console = console or Console()
        self.prompter = prompter or ConsolePrompter(self.console)
        self.clipboard = clipboard_ or clipboard.PyperclipClipboard()
        self.spawn = spawn
        self.select = select
        self.resolver = PathResolver(config.store_dir, config.home)
        self.gateway = CryptoGateway(config, keyring)
        self.recryptor = Recryptor(self.gateway)
        self.git = CommitEngine(config, keyring, self.console)

    @property
    def store_dir(self: "PasswordStore") -> Path:
        return self.config.store_dir

    def _print(self: "PasswordStore", text: str) -> None:
        self.console.print(
            text, markup=False, highlight=False, emoji=False, soft_wrap=True
        )

    def check_store(self: "PasswordStore") -> None:
        if not self.config.gpg_id_file.is_file():
            raise StoreDoesntExist()

    def _confirm(self: "PasswordStore", question: str, force: bool) -> None:
        if not force and not self.prompter.confirm(question):
            raise UserAbort()

    def _entry_path(self: "PasswordStore", name: str) -> Path:
        path = self.resolver.canonical(name)
        if path.is_dir():
            raise PathIsDir(name)
        return path

    def clip(self: "PasswordStore", contents: str) -> None:
        clipboard.clip(
            contents,
            self.config.clip_time,
            clipboard=self.clipboard,
            spawn=self.spawn,
        )

    # Mutators

    def init(self: "PasswordStore", ids: Sequence[str], subfolder: str = "") -> None:
        ids = [key for key in ids if key.strip()]
        if subfolder:
            self.check_store()
        directory = self.resolver.exact(subfolder) if subfolder else self.store_dir
        gpg_id = directory / GPG_ID
        name = self.resolver.entry_name(directory)

        if not ids:
            self._deinit(directory, gpg_id, name)
            return

        if not self.keyring.secret_keys(ids):
            raise NoPrivateKeyFound()
        self.store_dir.mkdir(parents=True, exist_ok=True, mode=self.config.dir_mode)
        previous = _domain_keys(self.store_dir, directory) if directory.exists() else []
        directory.mkdir(parents=True, exist_ok=True, mode=self.config.dir_mode)

        write_atomic(gpg_id, ("\n".join(ids) + "\n").encode(), self.config.file_mode)
        if directory == self.store_dir:
            attributes = self.store_dir / ".gitattributes"
            if not attributes.exists():
                write_atomic(attributes, GITATTRIBUTES.encode(), self.config.file_mode)
        if self.gateway.signing:
            self.gateway.sign_file(gpg_id)
        init_repository(self.store_dir)
        self._print(f"Password store initialized for {', '.join(ids)}")

        if previous != ids:
            self.recryptor.recrypt_dir(directory)
        message = f"Set GPG id to {', '.join(ids)}"
        if name:
            message += f" for {name}"
        self.git.commit(message + ".")

    def _deinit(self: "PasswordStore", directory: Path, gpg_id: Path, name: str) -> None:
        if directory == self.store_dir:
            raise RootGpgIdRemoval()
        if not gpg_id.is_file():
            raise NoGpgIdFile(name)
        gpg_id.unlink()
        if signature_path(gpg_id).exists():
            signature_path(gpg_id).unlink()
        self._print(f"Removed {gpg_id.relative_to(self.store_dir)}")
        self.recryptor.recrypt_dir(directory)
        self.git.commit(f"Deinitialize {name}.")

    def insert(
        self: "PasswordStore",
        name: str,
        echo: bool = False,
        multiline: bool = False,
        force: bool = False,
    ) -> None:
        self.check_store()
        path = self._entry_path(name)
        if path.exists():
            self._confirm(f"An entry exists for {name}. Overwrite it?", force)

        if multiline:
            contents = self.prompter.multiline(
                f"Enter contents of {name} and press Ctrl+D when finished:"
            )
        elif echo:
            contents = self.prompter.line(f"Enter password for {name}: ")
        else:
            contents = self.prompter.secret(f"Enter password for {name}: ")
            if contents != self.prompter.secret(f"Retype password for {name}: "):
                raise SecretsDontMatch()

        self.gateway.encrypt(contents.encode(), path)
        self.git.commit(
            f"Add given password for {name} to store.", _with_signatures([path])
        )

    def append(self: "PasswordStore", name: str, contents: Optional[str] = None) -> None:
        self.check_store()
        path = self._entry_path(name)
        if not path.is_file():
            raise NotInStore(name)
        if contents is None:
            contents = self.prompter.multiline(
                f"Enter contents to append to {name} and press Ctrl+D when finished:"
            )
        self.gateway.encrypt(contents.encode(), path, EditMode.APPEND)
        self.git.commit(f"Append to {name}.", _with_signatures([path]))

    def edit(self: "PasswordStore", name: str) -> None:
        self.check_store()
        path = self._entry_path(name)
        original = self.gateway.decrypt(path) if path.is_file() else b""

        shm = "/dev/shm" if os.path.isdir("/dev/shm") else None
        workdir = Path(tempfile.mkdtemp(prefix="passvault.", dir=shm))
        try:
            scratch = workdir / (Path(name).name + ".txt")
            scratch.write_bytes(original)
            scratch.chmod(0o600)
            subprocess.run(shlex.split(self.config.editor) + [str(scratch)], check=True)
            edited = scratch.read_bytes()
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        if edited == original:
            raise ContentsUnchanged()
        self.gateway.encrypt(edited, path)
        self.git.commit(
            f"Edit password for {name} using {self.config.editor}.",
            _with_signatures([path]),
        )

    def generate(
        self: "PasswordStore",
        name: str,
        length: Optional[int] = None,
        no_symbols: bool = False,
        clip: bool = False,
        in_place: bool = False,
        force: bool = False,
    ) -> str:
        self.check_store()
        length = self.config.generated_length if length is None else length
        if length <= 0:
            raise InvalidConfiguration("length", length)
        path = self._entry_path(name)
        charset = (
            self.config.character_set_no_symbols
            if no_symbols
            else self.config.character_set
        )
        password = generate_password(charset, length)

        if in_place and path.is_file():
            lines = self.gateway.decrypt_lines(path) or [""]
            lines[0] = password
            contents = "\n".join(lines)
            message = f"Replace generated password for {name}."
        else:
            if path.exists():
                self._confirm(f"An entry exists for {name}. Overwrite it?", force)
            contents = password
            message = f"Add generated password for {name}."

        self.gateway.encrypt(contents.encode(), path)
        self.git.commit(message, _with_signatures([path]))
        if clip:
            self.clip(password)
            self._print(
                f"Copied {name} to the clipboard, "
                f"which will clear in {self.config.clip_time} seconds."
            )
        else:
            self._print(f"The generated password for {name} is:")
            self._print(password)
        return password

    def remove(
        self: "PasswordStore", name: str, recursive: bool = False, force: bool = False
    ) -> None:
        self.check_store()
        directory = self.resolver.exact(name)
        path = self.resolver.canonical(name)
        if directory.is_dir() and directory != self.store_dir:
            if not recursive:
                raise PathIsDir(name)
            target = directory
        elif path.is_file():
            target = path
        else:
            raise NotInStore(name)

        self._confirm(f"Are you sure you want to delete {name}?", force)
        if target.is_file() and signature_path(target).exists():
            signature_path(target).unlink()
        remove_dirs_to_file(target, self.store_dir)
        logger.info("Removed %s", target)
        self.git.commit(f"Remove {name} from store.", _with_signatures([target]))

    def _locate_source(self: "PasswordStore", name: str) -> Tuple[Path, bool]:
        exact = self.resolver.exact(name)
        entry = exact if exact.name.endswith(GPG_EXT) else Path(str(exact) + GPG_EXT)
        if entry.is_file():
            return entry, True
        if exact.is_dir() and exact != self.store_dir:
            return exact, False
        raise NotInStore(name)

    def _destination(
        self: "PasswordStore", source: Path, is_file: bool, name: str
    ) -> Path:
        exact = self.resolver.exact(name)
        if exact.is_dir() or name.endswith("/"):
            return exact / source.name
        if is_file and not exact.name.endswith(GPG_EXT):
            return Path(str(exact) + GPG_EXT)
        return exact

    def _relocate(
        self: "PasswordStore", source: str, dest: str, force: bool, move: bool
    ) -> Tuple[Path, Path]:
        self.check_store()
        src, is_file = self._locate_source(source)
        dst = self._destination(src, is_file, dest)
        if dst == src or src in dst.parents:
            raise SourceIsDestination()
        if dst.exists():
            self._confirm(f"An entry exists for {dest}. Overwrite it?", force)

        source_keys = _domain_keys(self.store_dir, src)
        copy_entry(src, dst, self.store_dir, self.config.dir_mode)
        if move:
            if is_file and signature_path(src).exists():
                signature_path(src).unlink()
            remove_dirs_to_file(src, self.store_dir)

        if _domain_keys(self.store_dir, dst) != source_keys:
            logger.info("%s moved to another key domain, recrypting", dst)
            if is_file:
                self.recryptor.recrypt_file(dst)
            else:
                self.recryptor.recrypt_dir(dst)
        return src, dst

    def move(
        self: "PasswordStore", source: str, dest: str, force: bool = False
    ) -> None:
        src, dst = self._relocate(source, dest, force, move=True)
        self.git.commit(f"Rename {source} to {dest}.", _with_signatures([src, dst]))

    def copy(
        self: "PasswordStore", source: str, dest: str, force: bool = False
    ) -> None:
        _, dst = self._relocate(source, dest, force, move=False)
        self.git.commit(f"Copy {source} to {dest}.", _with_signatures([dst]))

    # Read verbs

    def resolve(self: "PasswordStore", name: str) -> List[Path]:
        self.check_store()
        path = self.resolver.canonical(name)
        if path.is_file():
            return [path]
        return find_single(self.store_dir, name)

    def pick(self: "PasswordStore", name: str, tty: Optional[bool] = None) -> Selection:
        matches = self.resolve(name)
        if len(matches) == 1:
            return Selection(matches[0], Action.SHOW)
        if tty is None:
            tty = sys.stdout.isatty()
        if not tty:
            raise StdoutNotTty()
        self.console.print(
            f"[yellow]Entry '{escape(name)}' not found. Starting search...[/]"
        )
        return self.select(matches, self.store_dir, self.console)

    def show(
        self: "PasswordStore",
        name: str,
        clip_line: Optional[int] = None,
        tty: Optional[bool] = None,
    ) -> None:
        selection = self.pick(name, tty)
        entry = self.resolver.entry_name(selection.path)
        if selection.action is Action.EDIT:
            self.edit(entry)
            return
        lines = self.gateway.decrypt_lines(selection.path)
        if clip_line is None and selection.action is Action.SHOW:
            for line in lines:
                self._print(line)
            return
        number = 1 if clip_line is None else clip_line
        if not 1 <= number <= len(lines):
            raise LineDoesntExist(entry, number)
        self.clip(lines[number - 1])
        self._print(
            f"Copied {entry} to the clipboard, "
            f"which will clear in {self.config.clip_time} seconds."
        )

    def find(self: "PasswordStore", names: Sequence[str]) -> Dict[str, List[str]]:
        self.check_store()
        return {
            name: [
                self.resolver.entry_name(path)
                for path in find_single(self.store_dir, name)
            ]
            for name in names
        }

    def grep(
        self: "PasswordStore", pattern: str, ignore_case: bool = False
    ) -> List[Tuple[str, int, str]]:
        self.check_store()
        try:
            regex = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
        except re.error as exc:
            raise InvalidPattern(pattern, exc) from None
        found = []
        for path in iter_entries(self.store_dir):
            for number, line in enumerate(self.gateway.decrypt_lines(path), 1):
                if regex.search(line):
                    found.append((self.resolver.entry_name(path), number, line))
        return found

    def tree(self: "PasswordStore", subfolder: str = "") -> Tree:
        self.check_store()
        if not subfolder:
            return build_tree(self.store_dir)
        directory = self.resolver.exact(subfolder)
        if not directory.is_dir():
            raise NotInStore(subfolder)
        return build_tree(directory, self.resolver.entry_name(directory))
