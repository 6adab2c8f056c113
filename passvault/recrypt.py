"""Re-encryption of entries when the key set of their domain changes.

A domain is the subtree governed by one `.gpg-id`. Walking a domain stops at
every subdirectory holding its own `.gpg-id`: those are separate domains and
must be recrypted by their own call.
"""

from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from passvault.crypto.gateway import CryptoGateway
from passvault.errors import NoPrivateKeyFound
from passvault.log import get_logger
from passvault.paths import GPG_EXT, GPG_ID

logger = get_logger(__name__)

Listing = Callable[[Path], Iterable[Tuple[str, bool]]]


def list_directory(directory: Path) -> List[Tuple[str, bool]]:
    return sorted((child.name, child.is_dir()) for child in directory.iterdir())


def walk_domain(
    root: Path,
    listdir: Listing = list_directory,
    stop: Optional[Callable[[Path, List[str]], bool]] = None,
) -> Iterator[Path]:
    """Yield the `.gpg` entries of the domain rooted at `root`.

    `listdir` returns `(name, is_dir)` pairs. `stop(directory, names)` decides
    whether a subdirectory is left out; by default any subdirectory holding a
    `.gpg-id` is. Hidden files and directories (`.git`) are never visited.
    """
    if stop is None:
        stop = lambda directory, names: GPG_ID in names  # noqa: E731
    worklist = [root]
    while worklist:
        directory = worklist.pop()
        children = list(listdir(directory))
        names = [name for name, _ in children]
        if directory != root and stop(directory, names):
            logger.debug("Not descending into %s: separate key domain", directory)
            continue
        subdirs = []
        for name, is_dir in children:
            if name.startswith("."):
                continue
            if is_dir:
                subdirs.append(directory / name)
            elif name.endswith(GPG_EXT):
                yield directory / name
        worklist.extend(reversed(subdirs))


class Recryptor:
    def __init__(self: "Recryptor", gateway: CryptoGateway) -> None:
        self.gateway = gateway

    def _resolve_keys(
        self: "Recryptor", path: Path, keys: Optional[Sequence[str]]
    ) -> List[str]:
        if keys is None:
            keys = self.gateway.recipients(path)
        if not keys:
            raise NoPrivateKeyFound()
        return list(keys)

    def recrypt_file(
        self: "Recryptor", path: Path, keys: Optional[Sequence[str]] = None
    ) -> None:
        keys = self._resolve_keys(path, keys)
        if not self.gateway.keyring.secret_keys(keys):
            raise NoPrivateKeyFound()
        plaintext = self.gateway.decrypt(path)
        self.gateway.encrypt(plaintext, path, keys=keys)
        logger.info("Recrypted %s", path)

    def recrypt_dir(
        self: "Recryptor", path: Path, keys: Optional[Sequence[str]] = None
    ) -> List[Path]:
        """Recrypt every entry of the domain at `path`. Entries already done
        when a failure occurs stay recrypted; rerunning is safe."""
        keys = self._resolve_keys(path, keys)
        done = []
        for entry in walk_domain(path):
            self.recrypt_file(entry, keys)
            done.append(entry)
        return done
