"""
HTTP server entry point.

Usage:
    social-graph-server            # settings from SOCIAL_GRAPH_* env vars
    python -m social_graph_service.server --port 8080
"""

import argparse
import logging

import uvicorn

from .config import StorageSettings, settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Social Graph Service HTTP API")
    parser.add_argument("--host", default=settings.http.host)
    parser.add_argument("--port", type=int, default=settings.http.port)
    parser.add_argument("--workers", type=int, default=settings.http.workers)
    parser.add_argument("--log-level", default=settings.http.log_level)
    args = parser.parse_args(argv)

    storage = StorageSettings()
    if args.workers > 1 and (storage.path or storage.url == ":memory:"):
        # In-process stores are per worker and embedded stores are locked to one process
        parser.error(
            f"--workers {args.workers} requires a shared Qdrant server; "
            "set SOCIAL_GRAPH_STORAGE_URL to its address"
        )

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Social Graph Service on {args.host}:{args.port} ({args.workers} worker(s))")

    # Each worker opens its own context; Redis pub/sub keeps their caches coherent
    uvicorn.run(
        "social_graph_service.web.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        workers=args.workers,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
