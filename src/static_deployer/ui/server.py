"""Serving of the bundled front-end."""

from pathlib import Path

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse

logger = structlog.get_logger()

RESERVED_PREFIXES = ("api/", "metrics")


def setup_public_routes(app: FastAPI, public_dir: Path) -> bool:
    """Serve files from ``public_dir`` with ``index.html`` as SPA fallback.

    Must be called after every other route is registered, the catch-all
    route would shadow anything added later.

    Returns:
        Whether routes were installed
    """
    public_dir = Path(public_dir)
    if not public_dir.is_dir():
        logger.warning("Public directory does not exist, not serving front-end", public_dir=str(public_dir))
        return False

    root = public_dir.resolve()
    index_file = root / "index.html"
    logger.info("Setting up public routes", public_dir=str(root))

    @app.get("/{path:path}", include_in_schema=False)
    async def serve_public(path: str):
        if path.startswith(RESERVED_PREFIXES):
            raise HTTPException(status_code=404)

        if path:
            candidate = (root / path).resolve()
            if root in candidate.parents and candidate.is_file():
                return FileResponse(candidate)

        if index_file.exists():
            return FileResponse(index_file)
        raise HTTPException(status_code=404, detail="Not found")

    return True
