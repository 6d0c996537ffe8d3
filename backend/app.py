from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pathlib import Path
import os
import logging

from routers import mod_router, health_router
from config import APP_NAME, APP_VERSION, LOG_LEVEL, MODS_DIR, CONFIG_DIR


app = FastAPI(title=APP_NAME, version=APP_VERSION)

# ---- CORS Configuration ----
try:
    from fastapi.middleware.cors import CORSMiddleware
    _origins_env = os.getenv("ALLOWED_ORIGINS", "*")
    _origins_regex_env = os.getenv("ALLOWED_ORIGIN_REGEX")
    # Priority: explicit regex > explicit list > wildcard fallback
    if _origins_regex_env:
        _cors = {"allow_origin_regex": _origins_regex_env}
    elif _origins_env.strip() == "*":
        _cors = {"allow_origin_regex": ".*"}
    else:
        _cors = {"allow_origins": [o.strip() for o in _origins_env.split(",") if o.strip()]}
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
        **_cors,
    )
    logging.getLogger(__name__).info("CORS configured with %s", _cors)
except Exception as e:
    logging.getLogger(__name__).warning("CORS skipped due to error: %s", e)

# Enable gzip compression for API responses (browse results can be large)
try:
    from starlette.middleware.gzip import GZipMiddleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)
except Exception:
    pass


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are client errors; report them as 400 with the pydantic error list
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# Include all routers
app.include_router(mod_router)
app.include_router(health_router)

# /api aliases to avoid ad-block filters blocking paths like /mods/browse
for _router in [mod_router, health_router]:
    app.include_router(_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    """Initialize the application when it starts."""
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger = logging.getLogger(__name__)
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)
    logger.info("Mods directory: %s", MODS_DIR)
    logger.info("Config directory: %s", CONFIG_DIR)
    for d in (MODS_DIR, CONFIG_DIR):
        try:
            Path(d).mkdir(parents=True, exist_ok=True)
        except Exception as e:
            logger.error("Could not create %s: %s", d, e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
