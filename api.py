import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from mongita.errors import MongitaError
from pymongo.errors import PyMongoError

import comments
import posts
from auth import TokenVerifier
from database import DocumentStore, connect
from media import URL_PREFIX, MediaStore
from settings import Settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def create_app(settings: Optional[Settings] = None, database=None) -> FastAPI:
    """Build the application. `database` overrides the connection made from settings."""
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level.upper())

    if database is None:
        database = connect(settings)

    app = FastAPI(title="Wellness Feed API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = DocumentStore(database)
    media = MediaStore(settings.upload_dir, settings.max_upload_bytes)
    app.state.settings = settings
    app.state.db = database
    app.state.verifier = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)
    app.state.posts = posts.PostService(store, media)
    app.state.comments = comments.CommentService(store)

    app.include_router(posts.router, prefix=API_PREFIX)
    app.include_router(comments.router, prefix=API_PREFIX)

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(URL_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    async def store_error(request: Request, exc: Exception):
        logger.exception("Store error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Server error", "error": str(exc)})

    app.add_exception_handler(PyMongoError, store_error)
    app.add_exception_handler(MongitaError, store_error)

    @app.get("/")
    def read_root():
        return {"message": "Wellness Feed API running"}

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "✅ Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": settings.database_name,
            "connection_status": "Connected",
            "collections": []
        }
        try:
            collections = app.state.db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except (PyMongoError, MongitaError) as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    return app
