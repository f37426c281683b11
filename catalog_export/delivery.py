"""
Report delivery.

A sink takes the finished report bytes and a file name and stores them,
replacing any earlier file of the same name. Each deliver() call sets up its
own connection, so a retry never reuses the state of a failed attempt.
"""

import logging
import time
from pathlib import Path

import requests

from .api import elapsed_ms
from .errors import DeliveryError

log = logging.getLogger("catalog-export")

MAX_ATTEMPTS = 4


class LocalDirectorySink:
    def __init__(self, directory):
        self.directory = Path(directory)

    def deliver(self, data, name):
        path = self.directory / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.unlink(missing_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise DeliveryError(f"Could not write {path}: {e}") from e
        log.info("  wrote %s", path)
        return path

    def __repr__(self):
        return f"LocalDirectorySink({str(self.directory)!r})"


class HttpUploadSink:
    """
    Upload to base_url/name: DELETE the old file first (404 is fine, there
    may be none), then PUT the new one.
    """

    def __init__(self, base_url, token=None, timeout=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _session(self):
        session = requests.Session()
        if self.token:
            session.headers["Authorization"] = f"Bearer {self.token}"
        return session

    def deliver(self, data, name):
        url = f"{self.base_url}/{name}"
        begin = time.monotonic()
        with self._session() as session:
            try:
                resp = session.delete(url, timeout=self.timeout)
                if resp.status_code != 404:
                    resp.raise_for_status()
                resp = session.put(url, data=data, timeout=self.timeout,
                                   headers={"Content-Type": "text/csv; charset=utf-8"})
                resp.raise_for_status()
            except requests.RequestException as e:
                raise DeliveryError(f"Upload to {url} failed: {e}") from e
        log.info("Uploaded %s in %d ms", url, elapsed_ms(begin))
        return url

    def __repr__(self):
        return f"HttpUploadSink({self.base_url!r})"


def deliver_with_retry(sink, data, name, max_attempts=MAX_ATTEMPTS):
    """
    Try sink.deliver up to max_attempts times in a row, with no pause between
    attempts. The error of the last attempt is re-raised.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return sink.deliver(data, name)
        except Exception as e:
            if attempt == max_attempts:
                log.error("Delivery of %s failed after %d attempts", name, attempt)
                raise
            log.warning("Delivery attempt %d/%d of %s failed, retrying: %s",
                        attempt, max_attempts, name, e)
