"""Command line password manager compatible with the `pass` store layout.
"""

import getpass
import logging
import os
import subprocess
import sys
from argparse import REMAINDER, ArgumentParser, Namespace
from pathlib import Path
from typing import List, Optional

from pgpy.errors import PGPError
from pygit2 import GitError
from rich.console import Console
from rich.markup import escape
from tabulate import tabulate

from passvault import __version__
from passvault.clipboard import HASH_VARIABLE, Unclipper, detach_stdout
from passvault.config import Config
from passvault.crypto.keyring import Keyring, fingerprint_of
from passvault.errors import ContentsUnchanged, PassError, SecretsDontMatch
from passvault.git import run_git
from passvault.log import get_logger
from passvault.store import PasswordStore

logger = get_logger(__name__)


def ask_passphrase(key) -> str:
    return getpass.getpass(f"Passphrase for key {fingerprint_of(key)}: ")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="passvault", description=__doc__)
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug output to stderr."
    )
    commands = parser.add_subparsers(dest="command")

    init = commands.add_parser("init", help="Initialise the store or a subfolder.")
    init.add_argument("-p", "--path", default="", help="Subfolder to initialise.")
    init.add_argument("ids", nargs="+", help="Key ids; a single '' removes them.")

    ls = commands.add_parser("ls", help="List the store as a tree.")
    ls.add_argument("subfolder", nargs="?", default="")

    find = commands.add_parser("find", help="List entries matching names.")
    find.add_argument("names", nargs="+")

    show = commands.add_parser("show", help="Decrypt and print an entry.")
    show.add_argument(
        "-c", "--clip", nargs="?", type=int, const=1, metavar="LINE",
        help="Copy line LINE (default 1) to the clipboard instead.",
    )
    show.add_argument("name")

    grep = commands.add_parser("grep", help="Search decrypted entries.")
    grep.add_argument("-i", "--ignore-case", action="store_true")
    grep.add_argument("pattern")

    insert = commands.add_parser("insert", help="Add a new entry.")
    insert.add_argument("-e", "--echo", action="store_true")
    insert.add_argument("-m", "--multiline", action="store_true")
    insert.add_argument("-f", "--force", action="store_true")
    insert.add_argument("name")

    append = commands.add_parser("append", help="Add lines to an entry.")
    append.add_argument("name")

    edit = commands.add_parser("edit", help="Edit an entry with $EDITOR.")
    edit.add_argument("name")

    generate = commands.add_parser("generate", help="Generate a new password.")
    generate.add_argument("-n", "--no-symbols", action="store_true")
    generate.add_argument("-c", "--clip", action="store_true")
    replace = generate.add_mutually_exclusive_group()
    replace.add_argument("-i", "--in-place", action="store_true")
    replace.add_argument("-f", "--force", action="store_true")
    generate.add_argument("name")
    generate.add_argument("length", nargs="?", type=int)

    rm = commands.add_parser("rm", help="Remove an entry or folder.")
    rm.add_argument("-r", "--recursive", action="store_true")
    rm.add_argument("-f", "--force", action="store_true")
    rm.add_argument("name")

    for verb, text in (("mv", "Move"), ("cp", "Copy")):
        sub = commands.add_parser(verb, help=f"{text} an entry or folder.")
        sub.add_argument("-f", "--force", action="store_true")
        sub.add_argument("source")
        sub.add_argument("dest")

    git = commands.add_parser("git", help="Run git inside the store.")
    git.add_argument("args", nargs=REMAINDER)

    key = commands.add_parser("key", help="Manage the OpenPGP keyring.")
    key_commands = key.add_subparsers(dest="key_command", required=True)
    key_generate = key_commands.add_parser("generate")
    key_generate.add_argument("name")
    key_generate.add_argument("--email")
    key_generate.add_argument("--size", type=int, default=3072)
    key_generate.add_argument("--no-passphrase", action="store_true")
    key_import = key_commands.add_parser("import")
    key_import.add_argument("path", type=Path)
    key_commands.add_parser("list")

    unclip = commands.add_parser("unclip")
    unclip.add_argument("timeout", type=int)
    unclip.add_argument("-f", "--force", action="store_true")
    return parser


def _key(args: Namespace, keyring: Keyring, console: Console) -> None:
    if args.key_command == "generate":
        passphrase = None
        if not args.no_passphrase:
            passphrase = getpass.getpass("Passphrase for the new key: ")
            if passphrase != getpass.getpass("Retype the passphrase: "):
                raise SecretsDontMatch()
        fingerprint = keyring.generate(args.name, args.email, passphrase, args.size)
        console.print(fingerprint)
    elif args.key_command == "import":
        console.print(keyring.import_key(args.path))
    else:
        rows = [
            (info.fingerprint, info.user_id, "yes" if info.secret else "no")
            for info in keyring.list()
        ]
        print(tabulate(rows, ("Fingerprint", "User id", "Secret")))


def _unclip(args: Namespace, console: Console) -> int:
    expected = os.environ.get(HASH_VARIABLE)
    if not expected:
        console.print("unclip is started by `show --clip`, not by hand.")
        return 0
    detach_stdout()
    Unclipper().run(expected, args.timeout, args.force)
    return 0


def run(args: Namespace, config: Config, console: Console) -> int:
    if args.command == "unclip":
        return _unclip(args, console)
    if args.command == "git":
        return run_git(config, args.args)

    keyring = Keyring(config.keyring_dir, ask_passphrase)
    if args.command == "key":
        _key(args, keyring, console)
        return 0

    store = PasswordStore(config, keyring, console=console)
    command = args.command or "ls"
    if command == "init":
        store.init(args.ids, args.path)
    elif command == "ls":
        subfolder = getattr(args, "subfolder", "")
        if subfolder and store.resolver.canonical(subfolder).is_file():
            store.show(subfolder)
        else:
            console.print(store.tree(subfolder))
    elif command == "find":
        for name, entries in store.find(args.names).items():
            console.print(f"Search terms: [bold]{escape(name)}[/]")
            for entry in entries:
                console.print(f"[blue]{escape(entry)}[/]")
    elif command == "show":
        store.show(args.name, args.clip)
    elif command == "grep":
        rows = store.grep(args.pattern, args.ignore_case)
        if rows:
            print(tabulate(rows, ("Entry", "Line", "Text")))
    elif command == "insert":
        store.insert(args.name, args.echo, args.multiline, args.force)
    elif command == "append":
        store.append(args.name)
    elif command == "edit":
        store.edit(args.name)
    elif command == "generate":
        store.generate(
            args.name,
            args.length,
            no_symbols=args.no_symbols,
            clip=args.clip,
            in_place=args.in_place,
            force=args.force,
        )
    elif command == "rm":
        store.remove(args.name, args.recursive, args.force)
    elif command == "mv":
        store.move(args.source, args.dest, args.force)
    elif command == "cp":
        store.copy(args.source, args.dest, args.force)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()
    errors = Console(stderr=True)
    try:
        config = Config.from_env()
        get_logger(level=logging.DEBUG if args.verbose else config.log_level)
        return run(args, config, console)
    except ContentsUnchanged as exc:
        errors.print(str(exc), markup=False, highlight=False)
    except PassError as exc:
        errors.print(f"[red]Error: {escape(str(exc))}[/]")
    except (PGPError, GitError, OSError, subprocess.CalledProcessError) as exc:
        logger.debug("Unhandled failure", exc_info=True)
        errors.print(f"[red]Error: {escape(str(exc))}[/]")
    except KeyboardInterrupt:
        errors.print("[red]Error: User aborted[/]")
    return 1


if __name__ == "__main__":
    sys.exit(main())
