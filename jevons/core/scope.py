"""
Project scope hierarchy.

Builds a tree of scopes from project paths. Nodes live in an arena indexed by
integer id with explicit parent and children ids, so a tree is cheap to copy
and is simply rebuilt whenever the project set changes.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from jevons.storage.models import Project

ROOT_ID = 0
ROOT_KEY = ""
ROOT_LABEL = "All"

_SEPARATORS = re.compile(r"[\\/]+")


def split_path(path: str) -> List[str]:
    """Split a filesystem-like path into its non-empty segments."""
    return [segment for segment in _SEPARATORS.split(path or "") if segment]


def path_key(segments: Sequence[str]) -> str:
    """Canonical key of the node reached by ``segments``."""
    if not segments:
        return ROOT_KEY
    return "/" + "/".join(segments)


@dataclass(frozen=True)
class ScopeNode:
    """One node of the scope tree.

    ``slugs`` holds the projects whose path ends at this node; a node with
    slugs is the leaf of those projects even if it also has children.
    """
    id: int
    parent: Optional[int]
    children: Tuple[int, ...]
    segment: str
    key: str
    slugs: Tuple[str, ...]
    paths: Tuple[str, ...]

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_leaf(self) -> bool:
        return bool(self.slugs)

    @property
    def label(self) -> str:
        return ROOT_LABEL if self.is_root else self.segment


class ScopeTree:
    """Immutable tree of scopes rooted at a synthetic "All" node."""

    def __init__(self, nodes: Sequence[ScopeNode]):
        if not nodes or not nodes[ROOT_ID].is_root:
            raise ValueError("scope tree needs a root node at id 0")
        self._nodes: Tuple[ScopeNode, ...] = tuple(nodes)
        self._by_key: Dict[str, int] = {node.key: node.id for node in self._nodes}
        self._leaf_of: Dict[str, int] = {}
        for node in self._nodes:
            for slug in node.slugs:
                self._leaf_of.setdefault(slug, node.id)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes)

    @property
    def root(self) -> ScopeNode:
        return self._nodes[ROOT_ID]

    @property
    def leaf_count(self) -> int:
        return sum(1 for node in self._nodes if node.is_leaf)

    def node(self, node_id: int) -> ScopeNode:
        return self._nodes[node_id]

    def children(self, node: ScopeNode) -> List[ScopeNode]:
        return [self._nodes[child] for child in node.children]

    def ancestors(self, node: ScopeNode) -> List[ScopeNode]:
        """Ancestors of ``node`` from its parent up to the root."""
        result = []
        current = node.parent
        while current is not None:
            result.append(self._nodes[current])
            current = self._nodes[current].parent
        return result

    def descendants(self, node: ScopeNode) -> List[ScopeNode]:
        """All nodes below ``node`` in depth-first order."""
        result = []
        stack = list(reversed(node.children))
        while stack:
            current = self._nodes[stack.pop()]
            result.append(current)
            stack.extend(reversed(current.children))
        return result

    def find(self, key: Optional[str]) -> Optional[ScopeNode]:
        """Resolve a scope identifier to a node.

        Accepts a path key (``/Users/x/dev``), a project slug, or an empty
        value for the root. An identifier without a path separator is looked
        up as a slug first, so ``alpha`` names the project even when a
        top-level ``/alpha`` directory exists.

        Returns:
            The node, or None when nothing matches
        """
        if key is None or not key.strip():
            return self.root
        key = key.strip()
        by_path = self._by_key.get(path_key(split_path(key)))
        by_slug = self._leaf_of.get(key)
        if _SEPARATORS.search(key):
            node_id = by_path if by_path is not None else by_slug
        else:
            node_id = by_slug if by_slug is not None else by_path
        if node_id is None:
            return None
        return self._nodes[node_id]

    def leaf_for(self, slug: str) -> Optional[ScopeNode]:
        node_id = self._leaf_of.get(slug)
        return None if node_id is None else self._nodes[node_id]

    def matches(self, node: ScopeNode, project_slug: str) -> bool:
        """True iff the project's leaf is ``node`` or one of its descendants.

        A slug with no project record belongs only to the root scope.
        """
        if node.is_root:
            return True
        current = self._leaf_of.get(project_slug)
        while current is not None:
            if current == node.id:
                return True
            current = self._nodes[current].parent
        return False

    def member_slugs(self, node: ScopeNode) -> Set[str]:
        """Slugs of every project inside the subtree rooted at ``node``."""
        slugs = set(node.slugs)
        for child in self.descendants(node):
            slugs.update(child.slugs)
        return slugs

    def locate(self, cwd: Optional[str]) -> ScopeNode:
        """Deepest node lying on ``cwd``'s path (the root if none)."""
        node = self.root
        for segment in split_path(cwd or ""):
            nxt = None
            for child_id in node.children:
                if self._nodes[child_id].segment == segment:
                    nxt = self._nodes[child_id]
                    break
            if nxt is None:
                break
            node = nxt
        return node

    def filter(self, query: Optional[str]) -> "ScopeTree":
        """Return the subtree of nodes matching a case-insensitive substring.

        A node is kept when its own segment, or the slug or path of any leaf
        below it, contains the query. Ancestors of kept nodes are always kept
        so the result stays connected to the root. An empty query returns
        this tree unchanged; a query matching nothing returns the root alone.
        """
        if query is None or not query.strip():
            return self
        needle = query.strip().lower()

        keep: Set[int] = {ROOT_ID}
        for node in self._nodes:
            if node.is_root:
                continue
            hit = needle in node.segment.lower()
            if not hit:
                for candidate in [node] + self.descendants(node):
                    if any(needle in s.lower() for s in candidate.slugs + candidate.paths):
                        hit = True
                        break
            if hit:
                keep.add(node.id)
                keep.update(a.id for a in self.ancestors(node))

        remap: Dict[int, int] = {}
        for node in self._nodes:
            if node.id in keep:
                remap[node.id] = len(remap)

        nodes = []
        for node in self._nodes:
            if node.id not in keep:
                continue
            nodes.append(ScopeNode(
                id=remap[node.id],
                parent=None if node.parent is None else remap[node.parent],
                children=tuple(remap[c] for c in node.children if c in keep),
                segment=node.segment,
                key=node.key,
                slugs=node.slugs,
                paths=node.paths,
            ))
        return ScopeTree(nodes)

    def to_dict(self, node: Optional[ScopeNode] = None) -> Dict[str, Any]:
        """Nested, JSON-ready representation of the (sub)tree."""
        node = node or self.root
        return {
            "key": node.key,
            "label": node.label,
            "slugs": list(node.slugs),
            "children": [self.to_dict(child) for child in self.children(node)],
        }


def build_scope_tree(projects: Iterable[Project]) -> ScopeTree:
    """Build the scope tree for a project set.

    Each project path is split into segments and inserted as a chain under
    the root. Projects sharing a prefix share every ancestor node.

    Args:
        projects: Projects to place in the tree

    Returns:
        A new ScopeTree
    """
    segments: List[str] = [""]
    keys: List[str] = [ROOT_KEY]
    parents: List[Optional[int]] = [None]
    children: List[List[int]] = [[]]
    slugs: List[List[str]] = [[]]
    paths: List[List[str]] = [[]]
    child_index: Dict[Tuple[int, str], int] = {}

    for project in projects:
        current = ROOT_ID
        chain: List[str] = []
        for segment in split_path(project.path):
            chain.append(segment)
            nxt = child_index.get((current, segment))
            if nxt is None:
                nxt = len(segments)
                segments.append(segment)
                keys.append(path_key(chain))
                parents.append(current)
                children.append([])
                slugs.append([])
                paths.append([])
                children[current].append(nxt)
                child_index[(current, segment)] = nxt
            current = nxt
        slugs[current].append(project.slug)
        paths[current].append(project.path)

    nodes = [
        ScopeNode(
            id=i,
            parent=parents[i],
            children=tuple(sorted(children[i], key=lambda c: segments[c])),
            segment=segments[i],
            key=keys[i],
            slugs=tuple(slugs[i]),
            paths=tuple(paths[i]),
        )
        for i in range(len(segments))
    ]
    return ScopeTree(nodes)
