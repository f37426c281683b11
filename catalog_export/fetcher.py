"""
Paginated fetching and side-loaded relationship resolution.

The list endpoints only report how many records exist after the first call,
so fetch_all() probes once with per_page=page_size to read meta.total and
then, if more than one page exists, requests every page concurrently. Page 1
is requested again in that case and the probe's records are thrown away, so
nothing is counted twice.
"""

import asyncio
import logging
import math

log = logging.getLogger("catalog-export")

PAGE_SIZE = 100
CONCURRENCY = 5


class PaginatedFetcher:
    def __init__(self, client, page_size=PAGE_SIZE, concurrency=CONCURRENCY):
        self.client = client
        self.page_size = page_size
        self.concurrency = concurrency

    def _params(self, filters, page=None):
        params = {"per_page": self.page_size}
        if page is not None:
            params["page"] = page
        # Filters override paging defaults; None means "don't send it"
        params.update({k: v for k, v in (filters or {}).items() if v is not None})
        return params

    async def _get(self, endpoint, params, semaphore=None):
        if semaphore is None:
            return await asyncio.to_thread(self.client.get_json, endpoint, params)
        async with semaphore:
            return await asyncio.to_thread(self.client.get_json, endpoint, params)

    async def fetch_all(self, endpoint, filters=None, resolve_included=False):
        """
        Return every primary record of a list endpoint.

        Any failed request fails the whole call; a partial list is never
        returned. With resolve_included the relationship refs of the returned
        records carry the attributes of their side-loaded counterparts.
        """
        first = await self._get(endpoint, self._params(filters))
        data = list(first.get("data") or [])
        included = list(first.get("included") or [])
        total = (first.get("meta") or {}).get("total")
        if total is None:
            total = len(data)

        if total > self.page_size:
            page_count = math.ceil(total / self.page_size)
            semaphore = asyncio.Semaphore(self.concurrency)
            pages = await asyncio.gather(*(
                self._get(endpoint, self._params(filters, page), semaphore)
                for page in range(1, page_count + 1)
            ))
            # Merge after the join point: each task only ever owned its own page
            data, included = [], []
            for body in pages:
                data.extend(body.get("data") or [])
                included.extend(body.get("included") or [])
            log.debug("%s: %d records over %d pages", endpoint, len(data), page_count)

        if resolve_included:
            resolve_relationships(data, included)
        return data


def _refs(relationship):
    """Yield the {type, id} refs of one relationship entry, to-one or to-many."""
    if not isinstance(relationship, dict):
        return
    ref = relationship.get("data")
    for item in ref if isinstance(ref, list) else [ref]:
        if isinstance(item, dict) and item.get("type") is not None and item.get("id") is not None:
            yield item


def resolve_relationships(records, included):
    """
    Copy side-loaded attributes onto relationship refs, in place.

    For every ref {type, id} the first included record with the same type and
    id wins. A ref with no match is left as it is; servers omit included
    records the caller cannot see, and that is not an error.
    """
    index = {}
    for item in included:
        index.setdefault((item.get("type"), item.get("id")), item)

    for record in records:
        for relationship in (record.get("relationships") or {}).values():
            for ref in _refs(relationship):
                match = index.get((ref["type"], ref["id"]))
                if match is not None and "attributes" in match:
                    ref["attributes"] = match["attributes"]
    return records
