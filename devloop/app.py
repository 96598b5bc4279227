"""
Demo HTTP service run under the supervisor.

Binds to HOST/PORT from the environment and exposes the health endpoint the
orchestrator probes. Run with `python -m devloop.app`.
"""

from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from . import __version__
from .config import config

SERVICE_NAME = "devloop-sample"

app = FastAPI(
    title="devloop sample",
    description="Sample service managed by the devloop supervisor",
    version=__version__,
)


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str


@app.get("/health", response_model=HealthResponse)
async def health():
    """Liveness probe."""
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def main():
    """Serve the app until SIGTERM."""
    uvicorn.run(
        "devloop.app:app",
        host=config.host,
        port=config.port,
        reload=config.hot_reload,
    )


if __name__ == "__main__":
    main()
