import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tourney.database import init_db
from tourney.routes import matches, settings, teams, tournament, veto

APP_NAME = "CS2 Tournament Match Engine API"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournament.router, prefix="/api", tags=["tournament"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(veto.router, prefix="/api", tags=["veto"])
app.include_router(teams.router, prefix="/api", tags=["teams"])
app.include_router(settings.router, prefix="/api", tags=["settings"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    route_count = sum(1 for r in app.routes if getattr(r, "path", None))
    logger.info("%s started with %d routes", APP_NAME, route_count)


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": APP_NAME, "status": "healthy"}
