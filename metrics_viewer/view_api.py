"""Read-only view API over the poller using FastAPI."""
from typing import Optional
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel
import logging
import time

from metrics_viewer.formatter import format_snapshot, snapshot_to_dict
from metrics_viewer.series import EventKind

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ViewAPI:
    """FastAPI app exposing the latest snapshot, recent events and self-metrics."""

    def __init__(self, poller):
        """
        Initialize view API.

        Args:
            poller: The running Poller
        """
        self.poller = poller
        self.app = FastAPI(title="Metrics Viewer API")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Get current poller status."""
            latest = self.poller.latest
            last_error = self.poller.last_error
            return {
                "state": self.poller.state.value,
                "uptime_seconds": time.time() - self.poller.start_time,
                "cycle": self.poller.cycle,
                "latest_cycle": latest.cycle if latest else None,
                "families": len(latest.families) if latest else 0,
                "samples": latest.sample_count if latest else 0,
                "last_error": {
                    "cycle": last_error.cycle,
                    "message": last_error.message,
                    "status_code": last_error.status_code,
                } if last_error else None,
                "config": {
                    "source": self.poller.source.describe(),
                    "interval_s": self.poller.interval_s,
                    "filter": self.poller.name_filter.pattern,
                    "aggregate_ignore_labels": str(self.poller.ignore),
                },
            }

        @self.app.get("/snapshot")
        async def snapshot():
            """Latest snapshot as JSON."""
            latest = self._require_snapshot()
            return snapshot_to_dict(latest)

        @self.app.get("/snapshot/text", response_class=PlainTextResponse)
        async def snapshot_text():
            """Latest snapshot rendered back to exposition text."""
            latest = self._require_snapshot()
            return format_snapshot(latest)

        @self.app.get("/events")
        async def events(limit: int = Query(50, ge=1, le=1000), kind: Optional[str] = None):
            """Recent fetch errors and parse warnings, newest last."""
            try:
                event_kind = EventKind(kind) if kind else None
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown event kind: {kind}")
            return [
                {
                    "cycle": e.cycle,
                    "timestamp": e.timestamp,
                    "kind": e.kind.value,
                    "message": e.message,
                    "status_code": e.status_code,
                }
                for e in self.poller.recent_events(limit, event_kind)
            ]

        @self.app.get("/metrics")
        async def metrics():
            """Self-metrics of the poller."""
            if not self.poller.self_metrics:
                raise HTTPException(status_code=404, detail="Self-metrics disabled")
            return Response(self.poller.self_metrics.render(), media_type=CONTENT_TYPE_LATEST)

        @self.app.post("/control/loglevel")
        async def set_log_level(request: LogLevelRequest):
            """Change log level at runtime."""
            level = request.level.upper()

            if level not in LOG_LEVELS:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid log level: {level}"
                )

            logging.getLogger().setLevel(getattr(logging, level))
            logger.info(f"Log level changed to: {level}")

            return {
                "status": "log_level_changed",
                "level": level,
                "timestamp": time.time()
            }

    def _require_snapshot(self):
        latest = self.poller.latest
        if latest is None:
            raise HTTPException(status_code=503, detail="No snapshot available yet")
        return latest

    def run(self, host: str = "0.0.0.0", port: int = 8081):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
