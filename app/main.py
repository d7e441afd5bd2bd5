# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import AlreadySubmitted, QuizError, ValidationFailure
from app.db.session import init_db
from app.schemas.quiz import submission_summary

# Import routers (router objects, not modules)
from app.api.quiz import router as quiz_router
from app.api.quiz_admin import router as quiz_admin_router
from app.api.studio_auth import router as studio_auth_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    logger.info("Quiz service started")
    yield


app = FastAPI(
    title="Formula IHU Registration Quiz",
    version="1.0.0",
    lifespan=lifespan,
)

# --------------------------------------------------
# CORS CONFIG
# --------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=r"http://localhost(:[0-9]+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------
# ERROR HANDLERS
# --------------------------------------------------
@app.exception_handler(AlreadySubmitted)
def already_submitted_handler(_: Request, exc: AlreadySubmitted):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "alreadySubmitted": True,
            "submissionId": exc.submission.id,
            "submission": submission_summary(exc.submission),
        },
    )


@app.exception_handler(QuizError)
def quiz_error_handler(_: Request, exc: QuizError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
def request_validation_handler(_: Request, exc: RequestValidationError):
    details = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        details[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    failure = ValidationFailure(details, "Invalid request")
    return JSONResponse(status_code=failure.status_code, content=failure.to_body())


# --------------------------------------------------
# API ROUTES
# --------------------------------------------------

# Quiz (config, progress, submit)
app.include_router(quiz_router, prefix="/api")

# Admin (latest quiz, submissions, IP logs, exports)
app.include_router(quiz_admin_router, prefix="/api")

# Studio login cookie
app.include_router(studio_auth_router, prefix="/api")


# --------------------------------------------------
# ROOT HEALTH CHECK
# --------------------------------------------------
@app.get("/")
def health_check():
    return {
        "status": "ok",
        "service": "Formula IHU Registration Quiz",
        "version": "1.0.0",
    }
