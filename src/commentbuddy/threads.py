"""Thread building and display policy for comment trees.

Everything here is a pure transform over already-fetched records: no backend
calls, no caching. Trees are rebuilt from scratch on every read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from commentbuddy.models import CollapseHint, CommentNode, CommentRecord, TruncatedTree

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_ELLIPSIS = "…"


def _sort_key(node: CommentRecord) -> tuple[float, str]:
    return node.created_at.timestamp(), node.id


def build_comment_tree(records: Iterable[CommentRecord]) -> list[CommentNode]:
    """Turn a flat set of comment records for one issue into an ordered tree.

    Records are indexed by id in a first pass and linked to their parent in a
    second pass. A record whose parent is not part of the fetch is placed at
    top level instead of being dropped, so every fetched comment is reachable
    exactly once. Siblings are ordered by ``created_at``, ties broken by ``id``.
    """
    index: dict[str, CommentNode] = {}
    for record in records:
        if record.id in index:
            continue
        index[record.id] = CommentNode.from_record(record)

    roots: list[CommentNode] = []
    for node in index.values():
        parent = index.get(node.parent_id) if node.parent_id else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)

    # A parent_id cycle leaves its members, and anything hanging off them,
    # unreachable from the roots. Cut each cycle at its oldest member.
    reachable = {n.id for n in iter_nodes(roots)}
    while len(reachable) < len(index):
        head = _cycle_head(index, next(n for n in index.values() if n.id not in reachable))
        index[head.parent_id].children.remove(head)  # type: ignore[index]
        roots.append(head)
        reachable.update(n.id for n in iter_nodes([head]))

    roots.sort(key=_sort_key)
    for node in index.values():
        node.children.sort(key=_sort_key)
    return roots


def _cycle_head(index: dict[str, CommentNode], start: CommentNode) -> CommentNode:
    """Follow parent links from a stranded node to its cycle; return the cycle's oldest member."""
    seen: list[str] = []
    node = start
    while node.id not in seen:
        seen.append(node.id)
        node = index[node.parent_id]  # type: ignore[index]
    cycle = [index[i] for i in seen[seen.index(node.id) :]]
    return min(cycle, key=_sort_key)


def iter_nodes(nodes: Iterable[CommentNode]) -> Iterator[CommentNode]:
    """Yield every node of a forest, depth-first, in display order."""
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def count_comments(nodes: Iterable[CommentNode]) -> int:
    """Count nodes in a forest, replies included."""
    return sum(1 for _ in iter_nodes(nodes))


def find_node(nodes: Iterable[CommentNode], comment_id: str) -> CommentNode | None:
    """Find a node by id at any depth."""
    return next((n for n in iter_nodes(nodes) if n.id == comment_id), None)


def body_preview(body: str, length: int) -> str:
    """First non-empty line of *body*, clipped to *length* characters."""
    first_line = next((line.strip() for line in body.splitlines() if line.strip()), "")
    if len(first_line) <= length:
        return first_line
    return first_line[: length - 1].rstrip() + _ELLIPSIS


def collapse_hints(nodes: Iterable[CommentNode], preview_length: int = 60) -> dict[str, CollapseHint]:
    """Compute collapse hints for resolved top-level threads.

    The tree is left untouched; the hint only tells a presenter to show a
    one-line summary instead of expanding the thread inline.
    """
    return {
        node.id: CollapseHint(
            preview=body_preview(node.body, preview_length),
            reply_count=count_comments(node.children),
        )
        for node in nodes
        if node.resolving_user is not None
    }


def truncate_tree(
    tree: list[CommentNode],
    limit: int | None = None,
    *,
    preview_length: int = 60,
) -> TruncatedTree:
    """Keep the first *limit* top-level threads, oldest first, with full depth.

    ``limit`` of ``None`` or ``<= 0`` keeps everything. Only breadth is
    limited: replies under a kept thread are never cut, and replies under an
    omitted thread are neither shown nor counted.
    """
    kept = tree if limit is None or limit <= 0 else tree[:limit]
    return TruncatedTree(
        threads=kept,
        omitted_count=len(tree) - len(kept),
        collapsed=collapse_hints(kept, preview_length),
    )
