from pathlib import Path
from typing import Optional

from rich.text import Text
from rich.tree import Tree

from passvault.paths import GPG_EXT, is_hidden


def build_tree(directory: Path, title: Optional[str] = None) -> Tree:
    """Directories first in bold blue, then entries with `.gpg` removed."""
    tree = Tree(title or "Password Store", guide_style="dim")
    _fill(tree, directory)
    return tree


def _fill(node: Tree, directory: Path) -> None:
    children = sorted(
        (child for child in directory.iterdir() if not is_hidden(child.name)),
        key=lambda child: (not child.is_dir(), child.name.lower()),
    )
    for child in children:
        if child.is_dir():
            _fill(node.add(Text(child.name, style="bold blue")), child)
        elif child.name.endswith(GPG_EXT):
            node.add(Text(child.name[: -len(GPG_EXT)]))
