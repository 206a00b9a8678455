import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marquee_core.errors import DomainError
from marquee_core.settings import Settings
from marquee_recommendation.context import build_context

from .routers import all_routers

log = logging.getLogger(__name__)


def _should_init_context() -> bool:
    flag = os.getenv("MARQUEE_SKIP_CONTEXT_INIT", "")
    return flag.strip().lower() not in {"1", "true", "yes"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_dotenv(find_dotenv(), override=False)

    settings = Settings()
    app.state.settings = settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if _should_init_context():
        startup_t0 = time.perf_counter()
        app.state.ctx = build_context(settings)
        log.info("Total startup time: %.2fs", time.perf_counter() - startup_t0)
    else:
        log.warning("Discovery context initialization skipped by MARQUEE_SKIP_CONTEXT_INIT")

    try:
        yield
    finally:
        ctx = getattr(app.state, "ctx", None)
        aclose = getattr(getattr(ctx, "cache", None), "aclose", None)
        if aclose is not None:
            await aclose()


app = FastAPI(title="Marquee Discovery API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=exc.status,
        content={"detail": str(exc), "code": exc.code},
    )


@app.get("/health")
def health():
    s = getattr(app.state, "settings", None)
    return {"status": "ok", "service": s.app_name if s else "marquee"}


@app.get("/")
def read_root():
    return {"status": "ok"}


for r in all_routers:
    app.include_router(r)
