"""
Backend startup script.

Usage:
    python run.py
    python run.py --reload
    python run.py --port 8080

On Windows the selector event loop policy is set before uvicorn creates its
loop, which psycopg3 requires. Reload workers are separate processes that do
not run this script, so use --reload on Linux or macOS.
"""

import uvicorn

from src.database import use_selector_event_loop_on_windows


def main() -> None:
    """Start the FastAPI application."""
    import argparse

    parser = argparse.ArgumentParser(description="Run the WebTrigger notification backend")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    use_selector_event_loop_on_windows()

    uvicorn.run(
        "src.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        # Asyncio loop, so the policy above applies
        loop="asyncio",
    )


if __name__ == "__main__":
    main()
