import logging
from contextlib import asynccontextmanager

import uvicorn

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import Base, engine
from .errors import FrontdoorError
from .logging_config import setup_logging
from . import models  # ensure models are registered
from .routes import core, webauthn, pdf, linkify

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup (no migrations yet)
    Base.metadata.create_all(bind=engine)
    logger.info("frontdoor started (env=%s, rp_id=%s, origin=%s)", settings.ENV, settings.WEBAUTHN_RP_ID, settings.WEBAUTHN_ORIGIN)
    yield

def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(title="frontdoor", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    @app.exception_handler(FrontdoorError)
    async def frontdoor_error_handler(request: Request, exc: FrontdoorError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    app.include_router(core.router)
    app.include_router(webauthn.router)
    app.include_router(pdf.router)
    app.include_router(linkify.router)
    return app

app = create_app()

def run():
    uvicorn.run("frontdoor.main:app", host="0.0.0.0", port=8000)

if __name__ == "__main__":
    run()
