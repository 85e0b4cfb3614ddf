"""
CLI entry point for the IDE Agent web server.

Run:  ide-agent [--port 8765] [--host 127.0.0.1] [--dir /path/to/project]
"""

import argparse
import logging
import os

import web.state as _state
from config import app_config


def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="IDE Agent: web server")
    parser.add_argument("--port", type=int, default=8765, help="Server port (default: 8765)")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--dir", default=None, help="Project root the agent works in (default: PROJECT_ROOT or .)")
    args = parser.parse_args()

    root = os.path.abspath(os.path.expanduser(args.dir or app_config.project_root))
    if not os.path.isdir(root):
        print(f"\n  Error: directory not found: {root}\n")
        raise SystemExit(1)
    _state.set_project_root(root)

    level = getattr(logging, app_config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not root_logger.handlers:
        h = logging.StreamHandler()
        h.setLevel(level)
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root_logger.addHandler(h)

    print(f"\n  IDE Agent")
    print(f"  http://{args.host}:{args.port}")
    print(f"  Project root: {_state.project_root()}\n")

    from web import app
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
