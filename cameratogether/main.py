# cameratogether/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import threading
import uvicorn
import logging
import os

from cameratogether.config.settings import settings
from cameratogether.delivery.api.collage import router
from cameratogether.domain.collage_service import CollageService

logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()

def _ensure_service(app: FastAPI) -> None:
    with _service_lock:
        if getattr(app.state, "collage_service", None) is not None:
            return
        logger.info("Initializing CollageService (lazy-init)...")
        app.state.collage_service = CollageService(executor=app.state.executor)
        logger.info("CollageService ready.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    max_workers = min(4, os.cpu_count() or 1)
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    app.state.collage_service = None
    logger.info(f"Service '{settings.PROJECT_NAME}' started (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor created with {max_workers} workers.")
    yield
    logger.info("Shutting down ThreadPoolExecutor...")
    app.state.executor.shutdown(wait=True)
    logger.info("Service stopped.")

app = FastAPI(
    title="CameraTogether Collage Service",
    description="Builds group photo collages from SVG frame templates",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)

app.include_router(router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "CameraTogether Collage Service", "version": "1.0.0", "status": "ok"}

@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "CameraTogether 1.0", "service_ready": getattr(app.state, "collage_service", None) is not None}

def run() -> None:
    uvicorn.run("cameratogether.main:app", host=settings.HOST, port=settings.PORT)

if __name__ == "__main__":
    run()
