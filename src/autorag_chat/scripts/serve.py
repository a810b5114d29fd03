"""Script to serve the chat API or the Chainlit UI."""

import argparse
import logging
import subprocess
import sys
from pathlib import Path

import uvicorn

from autorag_chat.config import get_settings


def serve_ui(port: int):
    """Run the Chainlit server."""
    app_path = Path(__file__).parent.parent / "ui" / "app.py"

    if not app_path.exists():
        print(f"Error: App file not found at {app_path}")
        sys.exit(1)

    print("Starting AutoRAG Chat UI...")
    print(f"Open http://localhost:{port} in your browser")
    print()

    subprocess.run(
        ["chainlit", "run", str(app_path), "--port", str(port)],
        check=True,
    )


def main():
    """Main entry point for the serve script."""
    parser = argparse.ArgumentParser(description="Serve the AutoRAG chat API or UI")
    parser.add_argument(
        "--ui",
        action="store_true",
        help="Run the Chainlit chat UI instead of the API",
    )
    parser.add_argument("--host", default="0.0.0.0", help="API bind address")
    parser.add_argument("--port", type=int, help="Port (default: 8000 API, 8001 UI)")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.ui:
        serve_ui(args.port or 8001)
        return

    print(f"Starting AutoRAG Chat API on {args.host}:{args.port or 8000}...")
    uvicorn.run("autorag_chat.api.main:app", host=args.host, port=args.port or 8000)


if __name__ == "__main__":
    main()
