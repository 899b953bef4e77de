#!/usr/bin/env python3
"""
GeomCore API entrypoint.

    geomcore-serve --compute-url http://10.0.0.4:80/ --port 3000

Configuration comes from the environment (see ``geomcore.config.settings``);
``--compute-url`` overrides RHINO_COMPUTE_URL for quick local debugging
against a different compute server.
"""

import argparse
import logging
import os
import sys

import uvicorn

from geomcore.logging_setup import ensure_logger, setup_logging

API_HOST = os.getenv("HOST", "0.0.0.0")
API_PORT = int(os.getenv("PORT", "3000"))


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the GeomCore API server")
    parser.add_argument("--compute-url", "--computeUrl", dest="compute_url", default=None,
                        help="Rhino Compute base URL (overrides RHINO_COMPUTE_URL)")
    parser.add_argument("--definitions-dir", default=None, help="Directory holding .gh/.ghx files")
    parser.add_argument("--host", default=API_HOST)
    parser.add_argument("--port", type=int, default=API_PORT)
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    return parser.parse_args(argv)


def main(argv=None) -> int:
    setup_logging(app_name="geomcore")
    args = parse_args(argv)
    logger = ensure_logger("geomcore", args.log_level)

    from geomcore.config.settings import Settings
    from geomcore.main import create_app

    settings = Settings.from_env().with_overrides(
        compute_url=args.compute_url,
        definitions_dir=args.definitions_dir,
    )
    app = create_app(settings)

    logger.info("Starting API server at %s:%d", args.host, args.port)
    try:
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            proxy_headers=True,
            forwarded_allow_ips="*",
            log_config=None,
        )
    except Exception as e:
        logger.error("API server exited: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
