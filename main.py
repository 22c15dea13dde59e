from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import logging
import time

from db import Base, engine
from errors import AssetManagerError
from routers import ALL_ROUTERS

import orm  # noqa: F401  registers tables on Base.metadata

app = FastAPI(title="IT Asset Management API")

Base.metadata.create_all(bind=engine)

# -----------------------
# Logging
# -----------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info(
        "method=%s path=%s status=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

# -----------------------
# Errors
# -----------------------
@app.exception_handler(AssetManagerError)
async def domain_error_handler(request: Request, exc: AssetManagerError):
    if exc.http_status >= 500:
        logger.error("path=%s error=%s", request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("path=%s rejected=%s detail=%s", request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "error": type(exc).__name__},
    )

for r in ALL_ROUTERS:
    app.include_router(r)

@app.get("/")
def root():
    return {"message": "IT Asset Management API", "docs": "/docs"}
