"""Search of store entries by name.

`find_single` is the lookup used by every read verb; `ClosestMatch` scores
candidates by the n-grams they share with a word and backs the "did you
mean" suggestion when a lookup comes back empty.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from passvault.errors import NoMatchesFound
from passvault.log import get_logger
from passvault.paths import GPG_EXT, check_sneaky_paths, iter_entries

logger = get_logger(__name__)

DEFAULT_SIZES = (2, 3, 4)


def ngrams(word: str, sizes: Sequence[int]) -> FrozenSet[str]:
    word = word.lower()
    return frozenset(
        word[start : start + size]
        for size in sizes
        if size <= len(word)
        for start in range(len(word) - size + 1)
    )


@dataclass
class Score:
    candidate: str
    score: float


class ClosestMatch:
    """Approximate matcher over a fixed dictionary of candidates.

    The score of a candidate is the number of n-grams it shares with the
    word, divided by the total number of n-grams on both sides.
    """

    def __init__(
        self: "ClosestMatch",
        dictionary: Iterable[str],
        sizes: Sequence[int] = DEFAULT_SIZES,
    ) -> None:
        self.sizes = tuple(sizes)
        self.substrings: Dict[str, FrozenSet[str]] = {
            candidate: ngrams(candidate, self.sizes) for candidate in dictionary
        }

    def _scores(self: "ClosestMatch", word: str) -> List[Score]:
        word_subs = ngrams(word, self.sizes)
        scores = []
        for candidate, subs in self.substrings.items():
            total = len(word_subs) + len(subs)
            shared = len(word_subs & subs)
            scores.append(Score(candidate, shared / total if total else 0.0))
        return scores

    def closest(self: "ClosestMatch", word: str) -> Optional[str]:
        best = self.closest_n(word, 1)
        return best[0] if best else None

    def closest_n(self: "ClosestMatch", word: str, n: int) -> List[str]:
        """Up to `n` distinct candidates, best first. Ties keep dictionary
        order."""
        picked: List[str] = []
        scores = self._scores(word)
        for _ in range(n):
            remaining = [score for score in scores if score.candidate not in picked]
            if not remaining:
                break
            best = max(remaining, key=lambda score: score.score)
            picked.append(best.candidate)
        return picked


def _strip(name: str) -> str:
    return name[: -len(GPG_EXT)] if name.endswith(GPG_EXT) else name


def suggest(store_dir: Path, target: str) -> Optional[str]:
    names = [
        _strip(path.relative_to(store_dir).as_posix())
        for path in iter_entries(store_dir)
    ]
    return ClosestMatch(names).closest(target) if names else None


def find_single(store_dir: Path, target: str) -> List[Path]:
    """Entries matching `target`, most specific first.

    An entry whose file name equals the target wins outright. Failing that, a
    target naming a directory of the store (`.` for the root) matches every
    entry below it; otherwise every entry whose relative path contains the
    target is returned, in reverse walk order.
    """
    check_sneaky_paths(target)
    matches = []
    for path in iter_entries(store_dir):
        if target in (path.name, _strip(path.name)):
            logger.debug("Exact match for '%s': %s", target, path)
            return [path]
        relative = _strip(path.relative_to(store_dir).as_posix())
        if target in relative or target in relative.lower():
            matches.append(path)

    directory = store_dir / target.strip("/") if target.strip("/") else store_dir
    if directory.is_dir():
        entries = list(iter_entries(directory))
        if entries:
            return entries

    if not matches:
        raise NoMatchesFound(target, suggest(store_dir, target))
    logger.debug("%d matches for '%s'", len(matches), target)
    return list(reversed(matches))
