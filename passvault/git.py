"""Git history of the store: one commit per mutation.

Committing a clean working tree is a no-op. When the repository sets
`commit.gpgsign`, commits carry a detached OpenPGP signature made with the
keyring, under the `gpgsig` header.
"""

import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pygit2
from rich.console import Console

from passvault.config import Config
from passvault.crypto.keyring import Keyring
from passvault.errors import NoGitIdentity, NoSigningKeyFound
from passvault.log import get_logger

logger = get_logger(__name__)


def open_repository(store_dir: Path) -> Optional[pygit2.Repository]:
    # Repository() would otherwise pick up an enclosing repository
    if not (store_dir / ".git").exists():
        return None
    return pygit2.Repository(str(store_dir))


def init_repository(store_dir: Path) -> pygit2.Repository:
    repo = open_repository(store_dir)
    if repo is None:
        logger.info("Initialising git repository in %s", store_dir)
        repo = pygit2.init_repository(str(store_dir))
    return repo


def _identity(repo: pygit2.Repository) -> pygit2.Signature:
    try:
        return repo.default_signature
    except KeyError:
        raise NoGitIdentity() from None


def run_git(config: Config, args: List[str]) -> int:
    """Run the git binary inside the store and return its exit status."""
    logger.debug("Running %s %s in %s", config.git_binary, args, config.store_dir)
    return subprocess.call([config.git_binary] + list(args), cwd=str(config.store_dir))


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def summarize(diff: pygit2.Diff) -> List[str]:
    """Diffstat of `diff` followed by one line per created, deleted, renamed
    or rewritten file."""
    stats = diff.stats
    summary = " " + _plural(stats.files_changed, "file") + " changed"
    if stats.insertions:
        summary += f", {_plural(stats.insertions, 'insertion')}(+)"
    if stats.deletions:
        summary += f", {_plural(stats.deletions, 'deletion')}(-)"
    lines = [summary]
    for delta in diff.deltas:
        status = delta.status_char()
        if status == "A":
            lines.append(f" create mode {delta.new_file.mode:o} {delta.new_file.path}")
        elif status == "D":
            lines.append(f" delete mode {delta.old_file.mode:o} {delta.old_file.path}")
        elif status == "R":
            lines.append(
                f" rename {delta.old_file.path} => {delta.new_file.path}"
                f" ({delta.similarity}%)"
            )
        elif status == "M":
            lines.append(f" rewrite {delta.new_file.path} (100%)")
    return lines


class CommitEngine:
    def __init__(
        self: "CommitEngine",
        config: Config,
        keyring: Keyring,
        console: Optional[Console] = None,
    ) -> None:
        self.config = config
        self.keyring = keyring
        self.console = console or Console()

    @property
    def repo(self: "CommitEngine") -> Optional[pygit2.Repository]:
        return open_repository(self.config.store_dir)

    def _relative(self: "CommitEngine", path: Path) -> str:
        path = Path(path)
        if path.is_absolute():
            path = path.relative_to(self.config.store_dir)
        return path.as_posix()

    def _changes(self: "CommitEngine", repo: pygit2.Repository) -> Dict[str, int]:
        return repo.status(untracked_files="all", ignored=False)

    def _stage(
        self: "CommitEngine",
        repo: pygit2.Repository,
        changes: Iterable[str],
        paths: Optional[Iterable[Path]],
    ) -> None:
        prefixes = None
        if paths is not None:
            prefixes = [self._relative(path).rstrip("/") for path in paths]
        index = repo.index
        for name in sorted(changes):
            if prefixes is not None and not any(
                prefix in (".", "") or name == prefix or name.startswith(prefix + "/")
                for prefix in prefixes
            ):
                continue
            if (self.config.store_dir / name).exists():
                logger.debug("Staging %s", name)
                index.add(name)
            else:
                logger.debug("Staging removal of %s", name)
                index.remove(name)
        index.write()

    def _signing_keys(self: "CommitEngine", repo: pygit2.Repository) -> List[str]:
        config = repo.config
        if "user.signingkey" in config:
            return [config["user.signingkey"]]
        if self.config.signing_keys:
            return list(self.config.signing_keys)
        return [_identity(repo).email]

    def _wants_signature(self: "CommitEngine", repo: pygit2.Repository) -> bool:
        try:
            return repo.config.get_bool("commit.gpgsign")
        except KeyError:
            return False

    def _create_commit(
        self: "CommitEngine",
        repo: pygit2.Repository,
        message: str,
        tree: pygit2.Oid,
        parents: List[pygit2.Oid],
    ) -> pygit2.Oid:
        author = _identity(repo)
        if not self._wants_signature(repo):
            return repo.create_commit(None, author, author, message, tree, parents)
        keys = self.keyring.secret_keys(self._signing_keys(repo))
        if not keys:
            raise NoSigningKeyFound()
        buffer = repo.create_commit_string(author, author, message, tree, parents)
        signature = self.keyring.sign(buffer.encode(), keys)
        return repo.create_commit_with_signature(buffer, str(signature), "gpgsig")

    def _advance_head(self: "CommitEngine", repo: pygit2.Repository, oid: pygit2.Oid) -> None:
        head = repo.lookup_reference("HEAD")
        if isinstance(head.target, str):
            repo.references.create(head.target, oid, force=True)
        else:
            repo.set_head(oid)

    def commit(
        self: "CommitEngine", message: str, paths: Optional[Iterable[Path]] = None
    ) -> Optional[pygit2.Oid]:
        """Stage the working tree (or only `paths`) and commit it.

        Returns the new commit id, or None when there was nothing to commit
        or the store is not under git.
        """
        repo = self.repo
        if repo is None:
            logger.debug("Store is not a git repository, not committing")
            return None
        changes = self._changes(repo)
        if not changes:
            self.console.print("Nothing to do", markup=False, highlight=False)
            return None

        self._stage(repo, changes, paths)
        tree = repo.index.write_tree()
        parents = [] if repo.head_is_unborn else [repo.head.target]
        if parents and repo[parents[0]].tree_id == tree:
            self.console.print("Nothing to do", markup=False, highlight=False)
            return None

        oid = self._create_commit(repo, message, tree, parents)
        self._advance_head(repo, oid)
        logger.info("Committed %s: %s", oid, message)
        self.report(repo, oid, message)
        return oid

    def report(
        self: "CommitEngine", repo: pygit2.Repository, oid: pygit2.Oid, message: str
    ) -> None:
        commit = repo[oid]
        if commit.parents:
            diff = repo.diff(commit.parents[0].tree, commit.tree)
        else:
            diff = commit.tree.diff_to_tree(swap=True)
        diff.find_similar()
        branch = repo.head.shorthand
        lines = [f"[{branch} {str(oid)[:7]}] {message}"] + summarize(diff)
        for line in lines:
            self.console.print(line, markup=False, highlight=False)
