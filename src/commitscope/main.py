"""Command-line entry point that serves the CommitScope API with uvicorn."""

import argparse
import sys
from dataclasses import replace

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from commitscope.config import ConfigStore, Settings
from commitscope.server import create_app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve commit history and streaming AI review endpoints")
    parser.add_argument("--host", type=str, help="Interface to bind (default: $HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: $PORT or 5000)")
    parser.add_argument("--repos-base", type=str, help="Directory holding cloned repositories")
    parser.add_argument("--config-file", type=str, help="JSON file persisting AI provider settings")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    load_dotenv()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    settings = Settings.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "repos_base": args.repos_base,
        "config_file": args.config_file,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    app = create_app(settings, ConfigStore(settings.config_file))
    logger.info(f"Repositories under {settings.repos_base}, config in {settings.config_file}")
    logger.info(f"HTTP server listening on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="debug" if args.verbose else "info")


if __name__ == "__main__":
    main()
