from __future__ import annotations

import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from modcar.config import settings

# ==================================================
# LOG
# ==================================================
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("modcar")

# ==================================================
# DATABASE
# ==================================================
from modcar.database import engine, init_db

# ==================================================
# FASTAPI APP
# ==================================================
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url=None,
)

# ==================================================
# MIDDLEWARE
# ==================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


# ==================================================
# ROUTERS
# ==================================================
import modcar.routers.auth as auth
import modcar.routers.admin as admin
import modcar.routers.moderation as moderation
import modcar.routers.partner as partner
import modcar.routers.public as public
import modcar.routers.functions as functions

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(moderation.router)
app.include_router(partner.router)
app.include_router(public.router)
app.include_router(functions.router)

# ==================================================
# STORAGE (imagens de produtos e anúncios)
# ==================================================
storage_dir = Path(settings.STORAGE_DIR).resolve()
storage_dir.mkdir(parents=True, exist_ok=True)
app.mount(settings.STORAGE_PATH, StaticFiles(directory=str(storage_dir)), name="storage")

# ==================================================
# STARTUP
# ==================================================
@app.on_event("startup")
def on_startup():
    logger.info("🚀 Iniciando %s (env=%s)", settings.APP_NAME, settings.ENV)
    init_db(engine)
    logger.info("✅ Banco de dados pronto")

# ==================================================
# HEALTH
# ==================================================
@app.get("/")
def health():
    return {"status": "ok", "service": "modcar-console"}
