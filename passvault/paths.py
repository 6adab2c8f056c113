"""Resolution of user supplied secret names into sandboxed store paths.

Names may be given relative to the store root (`Internet/amazon.com/login`)
or already prefixed with it; both resolve to the same absolute path. Anything
containing a `..` segment is refused before the filesystem is touched.
"""

import os
import shutil
from pathlib import Path
from typing import Iterator, Union

from passvault.errors import NoGpgIdFile, NotInStore, SneakyPath, SourceIsDestination
from passvault.log import get_logger

GPG_EXT = ".gpg"
GPG_ID = ".gpg-id"
SIG_EXT = ".sig"

logger = get_logger(__name__)

PathLike = Union[str, Path]


def check_sneaky_paths(path: PathLike) -> None:
    path = str(path)
    if "../" in path or "/.." in path or path == "..":
        raise SneakyPath(path)


def signature_path(path: Path) -> Path:
    return path.with_name(path.name + SIG_EXT)


class PathResolver:
    def __init__(self: "PathResolver", store_dir: Path, home: str) -> None:
        self.store_dir = store_dir
        self.home = home
        self._prefix = str(store_dir).rstrip("/")

    def _join(self: "PathResolver", name: str) -> str:
        if name == "~" or name.startswith("~/"):
            name = self.home + name[1:]
        if not (name == self._prefix or name.startswith(self._prefix + "/")):
            name = f"{self._prefix}/{name}"
        check_sneaky_paths(name)
        return name

    def canonical(self: "PathResolver", name: str) -> Path:
        """Path of the entry `name`, inferring the `.gpg` suffix unless `name`
        already designates a directory."""
        path = self._join(name)
        if os.path.exists(path + GPG_EXT):
            return Path(path + GPG_EXT)
        if os.path.isdir(path) or path.endswith("/"):
            return Path(path)
        if path.endswith(GPG_EXT) and os.path.isfile(path):
            return Path(path)
        return Path(path + GPG_EXT)

    def exact(self: "PathResolver", name: str) -> Path:
        return Path(self._join(name))

    def contains(self: "PathResolver", path: Path) -> bool:
        return path == self.store_dir or self.store_dir in path.parents

    def entry_name(self: "PathResolver", path: Path) -> str:
        """Name of `path` relative to the store root, without `.gpg`."""
        if not self.contains(path):
            raise NotInStore(str(path))
        rel = path.relative_to(self.store_dir).as_posix()
        if rel.endswith(GPG_EXT):
            rel = rel[: -len(GPG_EXT)]
        return "" if rel == "." else rel


def find_gpg_id(directory: Path) -> Path:
    gpg_id = directory / GPG_ID
    if gpg_id.is_file():
        return gpg_id
    raise NoGpgIdFile(str(directory))


def closest_gpg_id(store_dir: Path, path: Path) -> Path:
    """The `.gpg-id` governing `path`, which need not exist yet."""
    directory = path if path.is_dir() else path.parent
    if directory != store_dir and store_dir not in directory.parents:
        raise NotInStore(str(path))
    while directory != store_dir:
        try:
            return find_gpg_id(directory)
        except NoGpgIdFile:
            directory = directory.parent
    return store_dir / GPG_ID


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def iter_entries(directory: Path) -> Iterator[Path]:
    """Every `.gpg` file below `directory` in sorted walk order, skipping
    hidden files and directories such as `.git`."""
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if not is_hidden(d))
        for name in sorted(files):
            if name.endswith(GPG_EXT) and not is_hidden(name):
                yield Path(root) / name


def create_dirs_to_file(path: Path, store_dir: Path, dir_mode: int) -> None:
    """Create the missing parents of `path` with `dir_mode` permissions."""
    check_sneaky_paths(path)
    missing = []
    directory = path.parent
    while not directory.exists() and directory != store_dir:
        missing.append(directory)
        directory = directory.parent
    for directory in reversed(missing):
        logger.debug("Creating directory %s", directory)
        directory.mkdir()
        os.chmod(directory, dir_mode)


def remove_dirs_to_file(path: Path, store_dir: Path) -> None:
    """Delete `path` then every parent left empty, stopping at the store."""
    check_sneaky_paths(path)
    if path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    directory = path.parent
    while directory != store_dir and store_dir in directory.parents:
        if any(directory.iterdir()):
            break
        logger.debug("Removing empty directory %s", directory)
        directory.rmdir()
        directory = directory.parent


def copy(source: Path, dest: Path, store_dir: Path, dir_mode: int) -> None:
    """Copy an entry (with its signature) or a whole subtree."""
    if source.is_dir():
        if dest == source or source in dest.parents:
            raise SourceIsDestination()
        shutil.copytree(source, dest, dirs_exist_ok=True)
        return
    if dest == source:
        raise SourceIsDestination()
    create_dirs_to_file(dest, store_dir, dir_mode)
    shutil.copy2(source, dest)
    if signature_path(source).exists():
        shutil.copy2(signature_path(source), signature_path(dest))
