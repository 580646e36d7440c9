"""Lineage resolver over the derived-from relation.

Asset A is a child of B iff B.id is in A.metadata['inputs']. No edges are
stored; the adjacency view is rebuilt from the asset list on every call.
"""

import logging
from collections import deque
from typing import Callable, Dict, Iterable, List

from catalog.parser.schema import Asset

logger = logging.getLogger(__name__)


def build_children_index(assets: Iterable[Asset]) -> Dict[str, List[str]]:
    """parent id -> ids of assets listing it in their inputs."""
    children: Dict[str, List[str]] = {}
    for asset in assets:
        for parent_id in asset.inputs:
            children.setdefault(parent_id, []).append(asset.id)
    return children


def _bfs(start: str, neighbours: Callable[[str], List[str]]) -> List[str]:
    """Ids reachable from start in BFS order, start excluded."""
    order: List[str] = []
    visited = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for nxt in neighbours(current):
            if nxt not in visited:
                visited.add(nxt)
                order.append(nxt)
                queue.append(nxt)
    return order


def ancestors_and_descendants(root_id: str, all_assets: Iterable[Asset]) -> List[Asset]:
    """
    Collect the root, its ancestors and its descendants, each once.

    Args:
        root_id: Asset id to start from
        all_assets: Every asset the lineage may pass through

    Returns:
        Root first, then ancestors in BFS order, then descendants in BFS
        order. Unknown root -> []. Ids with no known asset are skipped.
    """
    by_id: Dict[str, Asset] = {a.id: a for a in all_assets}
    if root_id not in by_id:
        return []
    children = build_children_index(by_id.values())

    def parents_of(asset_id: str) -> List[str]:
        # Dangling inputs never enter the visited set
        return [p for p in by_id[asset_id].inputs if p in by_id]

    ancestors = _bfs(root_id, parents_of)
    descendants = _bfs(root_id, lambda asset_id: children.get(asset_id, []))

    ordered: List[Asset] = [by_id[root_id]]
    seen = {root_id}
    for asset_id in ancestors + descendants:
        if asset_id not in seen:
            seen.add(asset_id)
            ordered.append(by_id[asset_id])

    logger.debug(
        f"Lineage of {root_id}: {len(ancestors)} ancestors, {len(descendants)} descendants"
    )
    return ordered
