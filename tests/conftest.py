import threading
import time

from catalog_export.errors import ApiError


class FakeClient:
    """
    Stands in for ApiClient. routes maps (endpoint, frozenset of filter items)
    to a list of records; every call is recorded and in-flight calls counted.
    events holds ("start" | "end", params) in the order they happened.
    """

    def __init__(self, routes=None, total_override=None, delay=0.0, fail_page=None):
        self.routes = routes or {}
        self.total_override = total_override
        self.delay = delay
        self.fail_page = fail_page
        self.calls = []
        self.events = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _records(self, endpoint, params):
        filters = {k: v for k, v in params.items() if k not in ("page", "per_page")}
        return self.routes.get((endpoint, frozenset(filters.items())), [])

    def get_json(self, endpoint, params=None):
        params = dict(params or {})
        with self._lock:
            self.calls.append((endpoint, params))
            self.events.append(("start", params))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail_page is not None and params.get("page") == self.fail_page:
                raise ApiError(f"page {self.fail_page} exploded", status=502)
            records = self._records(endpoint, params)
            per_page = params["per_page"]
            page = params.get("page", 1)
            chunk = records[(page - 1) * per_page:page * per_page]
            total = len(records) if self.total_override is None else self.total_override
            return {"data": [dict(r) for r in chunk], "included": [], "meta": {"total": total}}
        finally:
            with self._lock:
                self.in_flight -= 1
                self.events.append(("end", params))


def directory(id, name):
    return {"id": id, "type": "directory", "attributes": {"name": name}}


def route(endpoint, **filters):
    return (endpoint, frozenset(filters.items()))
