import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bracket_engine import __version__
from bracket_engine.database import init_db
from bracket_engine.routes import brackets

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Padel Bracket Engine API", version=__version__)

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

app.include_router(brackets.router, prefix="/api", tags=["brackets"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Padel Bracket Engine %s started, %d routes registered", __version__, len(app.routes))


@app.get("/api/health")
def health_check():
    return {"app_name": "Padel Bracket Engine API", "version": __version__, "status": "healthy"}
