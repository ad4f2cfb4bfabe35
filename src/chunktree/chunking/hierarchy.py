"""
Hierarchy building over a flat chunk list.

Chunks reference their parent by id only; every function here builds its
own id lookup for the call, so the list itself is the single source of truth.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from ..core.errors import StructuralCycleError
from ..core.logging import log
from ..core.models import Chunk

MAX_WALK_STEPS = 1000
PATH_SEPARATOR = " > "

DEPTH_MISMATCH = "DEPTH_MISMATCH"
ANCESTOR_MISMATCH = "ANCESTOR_MISMATCH"


def _lookup(chunks: Iterable[Chunk]) -> Dict[str, Chunk]:
    return {chunk.id: chunk for chunk in chunks}


def walk_ancestors(chunk: Chunk, by_id: Dict[str, Chunk]) -> Tuple[List[str], bool]:
    """Ancestor ids of ``chunk`` root-first, and whether the walk reached a root."""
    ancestors: List[str] = []
    parent_id = chunk.parent_id
    steps = 0

    while parent_id is not None:
        steps += 1
        if steps > MAX_WALK_STEPS:
            raise StructuralCycleError(chunk.id, MAX_WALK_STEPS)
        parent = by_id.get(parent_id)
        if parent is None:
            return ancestors, False
        ancestors.insert(0, parent.id)
        parent_id = parent.parent_id

    return ancestors, True


def build_hierarchy(chunks: List[Chunk]) -> List[Chunk]:
    """Assign ``depth`` and ``ancestor_ids`` to every chunk in place.

    Orphans (a ``parent_id`` that does not resolve) keep the partial chain
    found before the break; depth equals the number of resolved ancestors.
    A cycle raises ``StructuralCycleError`` before any chunk is touched.
    """
    by_id = _lookup(chunks)
    resolved = [walk_ancestors(chunk, by_id) for chunk in chunks]

    orphans = 0
    for chunk, (ancestors, rooted) in zip(chunks, resolved):
        chunk.ancestor_ids = ancestors
        chunk.depth = len(ancestors)
        if not rooted:
            orphans += 1

    log.debug(
        "hierarchy.built",
        chunks=len(chunks),
        orphans=orphans,
        max_depth=max((c.depth for c in chunks), default=0),
    )
    return chunks


def populate_children(chunks: List[Chunk]) -> List[Chunk]:
    """Fill the ``children`` id lists of container chunks; safe to call twice."""
    by_id = _lookup(chunks)
    for chunk in chunks:
        if chunk.is_container:
            chunk.children = []

    for chunk in chunks:
        parent = by_id.get(chunk.parent_id) if chunk.parent_id else None
        if parent is not None and parent.is_container:
            parent.children.append(chunk.id)
    return chunks


def root_chunks(chunks: Iterable[Chunk]) -> List[Chunk]:
    return [chunk for chunk in chunks if chunk.parent_id is None]


def leaf_chunks(chunks: List[Chunk]) -> List[Chunk]:
    """Chunks that no other chunk names as its parent."""
    parents = {chunk.parent_id for chunk in chunks if chunk.parent_id}
    return [chunk for chunk in chunks if chunk.id not in parents]


def hierarchy_mismatches(chunk: Chunk, by_id: Dict[str, Chunk]) -> List[Tuple[str, str]]:
    """``(code, message)`` pairs where stored depth or ancestors disagree with the parent links.

    Raises ``StructuralCycleError`` when the parent chain does not terminate.
    """
    ancestors, _rooted = walk_ancestors(chunk, by_id)
    mismatches: List[Tuple[str, str]] = []

    if chunk.depth != len(ancestors):
        mismatches.append(
            (
                DEPTH_MISMATCH,
                f"Chunk {chunk.id}: depth {chunk.depth} does not match "
                f"expected depth {len(ancestors)}",
            )
        )
    if chunk.ancestor_ids != ancestors:
        mismatches.append(
            (
                ANCESTOR_MISMATCH,
                f"Chunk {chunk.id}: ancestor ids {chunk.ancestor_ids} do not match "
                f"expected {ancestors}",
            )
        )
    return mismatches


def validate_hierarchy(chunks: List[Chunk]) -> List[str]:
    """Recompute depth and ancestors and report disagreements.

    Returns human-readable messages; an empty list means consistent.
    Orphans are reported by the validator, not here.
    """
    by_id = _lookup(chunks)
    errors: List[str] = []

    for chunk in chunks:
        try:
            mismatches = hierarchy_mismatches(chunk, by_id)
        except StructuralCycleError:
            errors.append(f"Chunk {chunk.id}: parent chain does not terminate")
            continue
        errors.extend(message for _code, message in mismatches)

    return errors


# -- tree navigation -------------------------------------------------------


def get_parent(chunk: Chunk, chunks: Iterable[Chunk]) -> Optional[Chunk]:
    if chunk.parent_id is None:
        return None
    return _lookup(chunks).get(chunk.parent_id)


def get_children(chunk: Chunk, chunks: Iterable[Chunk]) -> List[Chunk]:
    """Direct children in sequence order."""
    children = [c for c in chunks if c.parent_id == chunk.id]
    return sorted(children, key=lambda c: c.sequence_number)


def get_descendants(chunk: Chunk, chunks: List[Chunk]) -> List[Chunk]:
    """All chunks below ``chunk``, depth-first in sequence order."""
    by_parent: Dict[str, List[Chunk]] = {}
    for candidate in chunks:
        if candidate.parent_id is not None:
            by_parent.setdefault(candidate.parent_id, []).append(candidate)

    descendants: List[Chunk] = []
    seen = {chunk.id}
    stack = sorted(by_parent.get(chunk.id, []), key=lambda c: c.sequence_number, reverse=True)
    while stack:
        current = stack.pop()
        if current.id in seen:
            continue
        seen.add(current.id)
        descendants.append(current)
        stack.extend(
            sorted(by_parent.get(current.id, []), key=lambda c: c.sequence_number, reverse=True)
        )
    return descendants


def get_path_from_root(chunk: Chunk, chunks: Iterable[Chunk]) -> List[Chunk]:
    """Resolved ancestors root-first, followed by ``chunk`` itself."""
    by_id = _lookup(chunks)
    path = [by_id[ancestor_id] for ancestor_id in chunk.ancestor_ids if ancestor_id in by_id]
    path.append(chunk)
    return path


def get_hierarchy_path(chunk: Chunk, chunks: Iterable[Chunk]) -> str:
    """Breadcrumb such as ``Intro > Background > first paragraph``."""
    return PATH_SEPARATOR.join(c.label for c in get_path_from_root(chunk, chunks))
