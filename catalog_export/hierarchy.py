"""
Directory hierarchy -> folder route strings.

The directories endpoint is flat: it returns the direct children of one
directory (or the roots of a scope when directory_id is omitted) and nothing
about ancestors. Routes are therefore built top-down, one tree level per
round, so a parent's route is always known before any of its children are
seen:

    round 0   roots of every scope      Root
    round 1   children of the roots     Root@Child
    round 2   grandchildren             Root@Child@Leaf
    ...       until a round finds no children at all
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from .api import elapsed_ms

log = logging.getLogger("catalog-export")

SEPARATOR = "@"


@dataclass
class DirectoryNode:
    id: str
    name: str
    scope_id: str
    parent_id: str | None = None

    @classmethod
    def from_record(cls, record, scope_id, parent_id=None):
        attributes = record.get("attributes") or {}
        return cls(
            id=record.get("id"),
            name=attributes.get("name") or "",
            scope_id=scope_id,
            parent_id=parent_id,
        )


class PathTable:
    """
    directory id -> route. Entries are written once and never changed; a
    second insert for the same id is ignored.
    """

    def __init__(self):
        self._paths: dict[str, str] = {}

    def insert(self, node, parent_id=None):
        if node.id in self._paths:
            log.debug("Directory %s already has a route, keeping the first one", node.id)
            return self._paths[node.id]
        parent_path = self._paths.get(parent_id) if parent_id is not None else None
        # A missing parent only happens if the server breaks the tree shape
        path = f"{parent_path}{SEPARATOR}{node.name}" if parent_path is not None else node.name
        self._paths[node.id] = path
        return path

    def get(self, directory_id):
        """Route for directory_id, or "" for a deleted or inaccessible directory."""
        if directory_id is None:
            return ""
        return self._paths.get(directory_id, "")

    def as_dict(self):
        return dict(self._paths)

    def __contains__(self, directory_id):
        return directory_id in self._paths

    def __len__(self):
        return len(self._paths)


class HierarchyBuilder:
    """
    Breadth-first expansion of every scope's directory tree.

    All fetches of one level are dispatched together; each of them is capped
    by the fetcher's own concurrency limit, so a wide level can have many
    requests in flight at once.
    """

    def __init__(self, fetcher, endpoint="/directories"):
        self.fetcher = fetcher
        self.endpoint = endpoint
        self.rounds = 0

    async def _roots(self, scope_id):
        records = await self.fetcher.fetch_all(self.endpoint, {"team_id": scope_id})
        return [DirectoryNode.from_record(r, scope_id) for r in records]

    async def _children(self, parent):
        records = await self.fetcher.fetch_all(
            self.endpoint, {"team_id": parent.scope_id, "directory_id": parent.id},
        )
        # Children inherit the scope they were reached through
        return [DirectoryNode.from_record(r, parent.scope_id, parent.id) for r in records]

    async def build(self, scope_ids):
        begin = time.monotonic()
        table = PathTable()
        self.rounds = 0

        per_scope = await asyncio.gather(*(self._roots(s) for s in scope_ids))
        frontier = [node for nodes in per_scope for node in nodes]
        for node in frontier:
            table.insert(node)
        log.info("Fetched %d root directories in %d ms", len(frontier), elapsed_ms(begin))

        while frontier:
            level_begin = time.monotonic()
            per_parent = await asyncio.gather(*(self._children(p) for p in frontier))
            self.rounds += 1
            frontier = []
            for children in per_parent:
                for child in children:
                    table.insert(child, child.parent_id)
                    frontier.append(child)
            log.info("Fetched hierarchy %d: %d directories in %d ms",
                     self.rounds, len(frontier), elapsed_ms(level_begin))

        log.info("Built %d directory routes in %d ms", len(table), elapsed_ms(begin))
        return table
