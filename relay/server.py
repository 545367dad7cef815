from __future__ import annotations

import logging
from typing import Callable, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from relay import vendors
from relay.config import RelayConfig

logger = logging.getLogger(__name__)

MSG_NO_IMAGE = "No image provided"
MSG_TOO_LARGE = "Image too large"

VendorCall = Callable[[str, RelayConfig], str]


def _failure(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def _relay(call: VendorCall, config: RelayConfig, label: str):
    body = request.get_json(silent=True) or {}
    image = body.get("image") if isinstance(body, dict) else None
    if not image or not isinstance(image, str):
        return _failure(MSG_NO_IMAGE, 400)

    try:
        result = call(image, config)
    except vendors.MissingCredentialError as exc:
        logger.error("%s: %s", label, exc)
        return _failure("Server is missing the API key for this service", 500)
    except vendors.UpstreamError as exc:
        logger.warning("%s: %s", label, exc)
        return _failure(str(exc), 500)

    logger.info("%s: relayed %d chars", label, len(image))
    return jsonify({"success": True, "image": result})


def create_app(config: Optional[RelayConfig] = None) -> Flask:
    config = config or RelayConfig.from_env()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_content_length
    app.config["RELAY"] = config
    CORS(app, origins=list(config.cors_origins))

    @app.post("/api/remove-bg")
    def remove_bg():
        return _relay(vendors.remove_background, config, "remove-bg")

    @app.post("/api/colorize")
    def colorize():
        return _relay(vendors.colorize, config, "colorize")

    @app.errorhandler(413)
    def request_entity_too_large(_error):
        limit = f"{config.max_content_mb:g}MB"
        return _failure(f"{MSG_TOO_LARGE}. Maximum size is {limit}.", 413)

    return app
