"""CLI entrypoint for running the FastAPI app with uvicorn."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Run the ASGI server."""

    uvicorn.run(
        "speechbridge.app:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()
