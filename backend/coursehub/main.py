# coursehub/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .database import SessionLocal, init_db
from .errors import AppError, ServerError
from .routers import admin, auth, courses, grand_content, lectures
from .seed_data import seed_admin

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        seed_admin(db)
    finally:
        db.close()
    yield


# Init
app = FastAPI(title="CourseHub", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    max_age=config.SESSION_MAX_AGE,
    same_site="lax",
)

# Uploaded media is served back by path
config.MEDIA_DIR.mkdir(parents=True, exist_ok=True)
app.mount(config.MEDIA_URL_PREFIX, StaticFiles(directory=str(config.MEDIA_DIR)), name="media")

app.include_router(auth.router)
app.include_router(courses.router)
app.include_router(lectures.router)
app.include_router(grand_content.router)
app.include_router(admin.router)


# --- Errors ---

def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        field = ".".join(loc) or "body"
        if error.get("type") == "missing" or error.get("input") is None:
            messages.append(f"{field} required")
        else:
            messages.append(f"Invalid {field}")
    return "; ".join(messages) or "Bad request"


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(OSError)
async def store_error_handler(request: Request, exc: Exception):
    # Details stay in the server log
    logger.exception("%s %s failed", request.method, request.url.path, exc_info=exc)
    error = ServerError()
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


def run():
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
