from __future__ import annotations

import base64
import logging

import requests

from core.io import strip_data_url
from relay.config import RelayConfig

logger = logging.getLogger(__name__)


class MissingCredentialError(RuntimeError):
    """The vendor needs an API key that is not configured."""


class UpstreamError(RuntimeError):
    """The vendor call failed or answered with a non-2xx status."""


def remove_background(image: str, config: RelayConfig) -> str:
    """
    Send an image (raw base64 or data URL) to remove.bg and return the
    cut-out PNG as raw base64.
    """
    if not config.remove_bg_api_key:
        raise MissingCredentialError("REMOVE_BG_API_KEY is not set")

    try:
        resp = requests.post(
            config.remove_bg_api_url,
            headers={"X-Api-Key": config.remove_bg_api_key},
            data={"image_file_b64": strip_data_url(image), "size": "auto"},
            timeout=config.upstream_timeout,
        )
    except requests.RequestException as exc:
        raise UpstreamError(f"background removal request failed: {exc}") from exc

    if not resp.ok:
        logger.warning("remove.bg answered HTTP %s: %s", resp.status_code, resp.text[:200])
        raise UpstreamError(f"background removal service returned HTTP {resp.status_code}")

    return base64.b64encode(resp.content).decode("ascii")


def colorize(image: str, config: RelayConfig) -> str:
    # No colorization vendor is wired up yet; the image goes back unchanged.
    return image
