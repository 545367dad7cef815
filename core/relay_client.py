from __future__ import annotations

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

REMOVE_BG_PATH = "/api/remove-bg"
COLORIZE_PATH = "/api/colorize"


class RelayError(Exception):
    """The relay answered, but without a usable image."""


class RelayClient:
    """Client for the relay server's image endpoints."""
    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._http = session or requests.Session()

    def remove_background(self, image_b64: str) -> str:
        return self._post(REMOVE_BG_PATH, image_b64)

    def colorize(self, image_b64: str) -> str:
        return self._post(COLORIZE_PATH, image_b64)

    def _post(self, path: str, image_b64: str) -> str:
        """
        POST {"image": ...} and return the image of a successful reply.

        Raises requests.RequestException on transport failures and
        RelayError when the relay reports failure or the body is not the
        expected JSON.
        """
        url = self.base_url + path
        resp = self._http.post(url, json={"image": image_b64}, timeout=self.timeout)
        try:
            data = resp.json()
        except ValueError as exc:
            raise RelayError(f"relay returned a non-JSON response (HTTP {resp.status_code})") from exc

        if not isinstance(data, dict):
            raise RelayError(f"relay returned an unexpected payload (HTTP {resp.status_code})")
        if not data.get("success") or not data.get("image"):
            message = data.get("message") or "backend returned error"
            logger.warning("%s failed (HTTP %s): %s", path, resp.status_code, message)
            raise RelayError(str(message))
        logger.info("%s succeeded", path)
        return str(data["image"])
