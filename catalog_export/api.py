"""
HTTP access to the content API.

API quirks worth knowing:
  - Every list endpoint is JSON:API shaped: {data: [...], included: [...],
    meta: {total: N}}. `included` only appears when a record has relationships
    the server chose to side-load.
  - The bearer token comes from POST /token with client credentials. It is
    fetched once per run; there is no refresh, a run is far shorter than the
    token lifetime.
"""

import logging
import threading
import time

import requests

from .errors import ApiError

log = logging.getLogger("catalog-export")


class ApiClient:
    """
    Client for the content API, one requests.Session per thread.

    get_json() is blocking; the async fetcher calls it through
    asyncio.to_thread, so several worker threads use the client at once.
    requests does not promise a Session is thread-safe, so each thread gets
    its own, built from the shared headers and proxies.
    """

    def __init__(self, base_url, timeout=None, proxy=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {}
        self.proxies = {"http": proxy, "https": proxy} if proxy else {}
        self._local = threading.local()

    @property
    def session(self):
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.proxies.update(self.proxies)
            self._local.session = session
        # Headers can change after a thread's session was built (token)
        session.headers.update(self.headers)
        return session

    def url(self, path):
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def set_token(self, token):
        self.headers["Authorization"] = f"Bearer {token}"
        log.info("Access token set on client")

    def get_json(self, path, params=None):
        """
        Authenticated GET returning the decoded body. Any HTTP or connection
        failure is raised as ApiError; nothing is retried here.
        """
        return self._request("GET", path, params=params)

    def post_json(self, path, payload):
        return self._request("POST", path, json=payload)

    def _request(self, method, path, **kwargs):
        url = self.url(path)
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"{method} {url} failed: {e}") from e
        if not resp.ok:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            raise ApiError(
                f"{method} {url} returned HTTP {resp.status_code}",
                status=resp.status_code,
                payload=payload,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"{method} {url} returned a non-JSON body", status=resp.status_code) from e


def fetch_access_token(client, app_key, app_secret):
    """Exchange the app credentials for a bearer token and install it on the client."""
    begin = time.monotonic()
    body = client.post_json("/token", {
        "grant_type":  "client_credentials",
        "app_key":     app_key,
        "app_secret":  app_secret,
    })
    token = body.get("access_token") if isinstance(body, dict) else None
    if not token:
        raise ApiError("Token endpoint response has no access_token", payload=body)
    log.info("Fetched access token in %d ms", elapsed_ms(begin))
    client.set_token(token)
    return token


def elapsed_ms(begin):
    return int((time.monotonic() - begin) * 1000)
