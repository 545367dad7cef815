"""
Relay server for the editor's AI actions.

Endpoints:
 - POST /api/remove-bg -> {"success": true, "image": <base64 PNG>} via remove.bg
 - POST /api/colorize  -> same contract, echoes the image for now

Run:
  REMOVE_BG_API_KEY=... python server.py --port 3000
"""
from __future__ import annotations

import argparse
import logging
import os

from relay.config import RelayConfig
from relay.server import create_app


def main() -> None:
    ap = argparse.ArgumentParser(description="PhotonX relay server")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=int(os.environ.get("PORT", 3000)))
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    config = RelayConfig.from_env()
    if not config.remove_bg_api_key:
        logging.getLogger(__name__).warning("REMOVE_BG_API_KEY is not set; /api/remove-bg will answer 500")

    app = create_app(config)
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
