import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.routers import api_router
from app.services.scheduled_expiry import profile_expiry_engine

settings = get_settings()
log_level_name = (settings.log_level or "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
logging.getLogger("app").setLevel(log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.enable_profile_expiry_sweep:
        profile_expiry_engine.start()
    try:
        yield
    finally:
        profile_expiry_engine.shutdown()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    if not isinstance(exc.detail, str):
        return await http_exception_handler(request, exc)
    # Console clients read "message"; "detail" stays for FastAPI clients.
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.detail, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, str]:
    return {"status": "ok"}
