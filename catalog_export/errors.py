import requests


class ExportError(Exception):
    """Base class for every failure the export raises on purpose."""


class ConfigError(ExportError):
    pass


class ApiError(ExportError):
    """An upstream request failed. status is None for connection-level failures."""

    def __init__(self, message, status=None, payload=None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class DeliveryError(ExportError):
    pass


def error_message(exc):
    """
    Reduce any exception to one readable line for the final log entry.

    The content API reports failures as JSON bodies with a `message` (or
    `error`/`errmsg`) field, and that text is far more useful than requests'
    generic "400 Client Error" string, so it wins when present.
    """
    payload = getattr(exc, "payload", None)
    if payload is None and isinstance(exc, requests.HTTPError) and exc.response is not None:
        try:
            payload = exc.response.json()
        except ValueError:
            payload = None
    if isinstance(payload, dict):
        for key in ("message", "error", "errmsg"):
            if payload.get(key):
                status = getattr(exc, "status", None)
                return f"{payload[key]} (HTTP {status})" if status else str(payload[key])
    return str(exc) or type(exc).__name__
