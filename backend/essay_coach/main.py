import asyncio
import logging

from fastapi import FastAPI

from .cleanup import purge_idle_sessions
from .settings import settings
from .routers import health
from .routers import coach

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60 * 60

app = FastAPI(title="Essay Coach API")
app.include_router(health.router)
app.include_router(coach.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


async def _cleanup_watcher():
	# Run once at startup, then hourly
	while True:
		try:
			purge_idle_sessions(coach._sessions, settings.session_idle_seconds)
		except Exception:
			logger.exception("Idle session cleanup failed")
		await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)


@app.on_event("startup")
async def startup_event():
	if not settings.gemini_api_key:
		logger.warning("GEMINI_API_KEY is not set; coaching requests will fall back or fail")
	if settings.session_idle_seconds > 0:
		app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())
