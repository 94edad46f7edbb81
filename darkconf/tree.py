"""Class hierarchies (word trees) used for hierarchical softmax predictions."""

from __future__ import annotations

import re
from collections.abc import Iterable, MutableSequence, Sequence
from dataclasses import dataclass
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*[+-]?\d+")


@dataclass
class Tree:
    """A class hierarchy: each node has a parent and belongs to a sibling group.

    ``child[i]`` is the group holding the children of node ``i`` (or -1),
    ``group[i]`` is the group node ``i`` belongs to, and each group ``g``
    covers nodes ``group_offset[g]`` up to ``group_offset[g] + group_size[g]``.
    """

    name: list[str]
    parent: list[int]
    child: list[int]
    group: list[int]
    leaf: list[bool]
    group_size: list[int]
    group_offset: list[int]

    @property
    def n(self) -> int:
        return len(self.name)

    @property
    def groups(self) -> int:
        return len(self.group_size)

    def change_leaves(self, leaf_names: Iterable[str]) -> int:
        """Mark exactly the named nodes as leaves; return how many were found."""
        wanted = set(leaf_names)
        self.leaf = [name in wanted for name in self.name]
        found = sum(self.leaf)
        logger.info("Found %d leaves.", found)
        return found

    def hierarchy_probability(self, x: Sequence[float], c: int, stride: int) -> float:
        """Product of the conditional probabilities from node ``c`` up to the root."""
        p = 1.0
        while c >= 0:
            p *= float(x[c * stride])
            c = self.parent[c]
        return p

    def hierarchy_predictions(
        self,
        predictions: MutableSequence[float],
        n: int,
        only_leaves: bool,
        stride: int,
    ) -> None:
        """Turn conditional probabilities into absolute ones, in place."""
        for j in range(n):
            parent = self.parent[j]
            if parent >= 0:
                predictions[j * stride] *= predictions[parent * stride]
        if only_leaves:
            for j in range(n):
                if not self.leaf[j]:
                    predictions[j * stride] = 0

    def top_prediction(
        self, predictions: Sequence[float], thresh: float, stride: int
    ) -> int:
        """Descend the tree through the most likely child while confidence stays above ``thresh``."""
        p = 1.0
        group = 0
        while True:
            best = 0.0
            best_i = 0
            offset = self.group_offset[group]
            for index in range(offset, offset + self.group_size[group]):
                value = float(predictions[index * stride])
                if value > best:
                    best_i = index
                    best = value
            if p * best > thresh:
                p *= best
                group = self.child[best_i]
                if group < 0:
                    return best_i
            else:
                return self.parent[offset]


def _parse_line(line: str) -> tuple[str, int]:
    tokens = line.split(None, 1)
    if not tokens:
        return "", -1
    ident = tokens[0]
    if len(tokens) == 1:
        return ident, -1
    match = _LEADING_INT.match(tokens[1])
    return ident, int(match.group()) if match else -1


def read_tree(filename: str | Path) -> Tree:
    """Read a tree file of ``name parent`` lines; siblings must be listed together."""
    names: list[str] = []
    parents: list[int] = []
    children: list[int] = []
    groups_of: list[int] = []
    group_size: list[int] = []
    group_offset: list[int] = []

    last_parent = -1
    current_size = 0
    with open(filename, encoding="utf-8") as fh:
        for raw in fh:
            ident, parent = _parse_line(raw.rstrip("\n"))
            n = len(names)
            if parent >= n:
                raise ValueError(
                    f"node {ident!r} names parent {parent} before it is defined"
                )
            names.append(ident)
            parents.append(parent)
            children.append(-1)
            if parent != last_parent:
                group_offset.append(n - current_size)
                group_size.append(current_size)
                current_size = 0
                last_parent = parent
            groups_of.append(len(group_size))
            if parent >= 0:
                children[parent] = len(group_size)
            current_size += 1

    group_offset.append(len(names) - current_size)
    group_size.append(current_size)

    leaf = [True] * len(names)
    for parent in parents:
        if parent >= 0:
            leaf[parent] = False

    return Tree(
        name=names,
        parent=parents,
        child=children,
        group=groups_of,
        leaf=leaf,
        group_size=group_size,
        group_offset=group_offset,
    )


def change_leaves(tree: Tree, leaf_list: str | Path) -> int:
    """Mark as leaves the nodes named, one per line, in ``leaf_list``."""
    with open(leaf_list, encoding="utf-8") as fh:
        names = [line.rstrip("\n") for line in fh]
    return tree.change_leaves(names)