import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.backend.config import Settings, load_settings
from app.backend.db import init_db, make_engine, make_session_factory
from app.backend.db.store import SqlExamStore
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.evaluation.vision import GeminiVisionClient
from app.backend.questions.bank import QuestionBank
from app.backend.questions.llm import GroqChatClient
from app.backend.uploads import CloudinaryUploadStore, LocalUploadStore
from .routes import analysis, debug, exams, health, letters, questions, sessions, uploads
from app.backend.api.ws import router as ws_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    engine = make_engine(settings.database_url, settings.db_echo)
    media_dir = Path(settings.media_dir)
    media_dir.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
        yield
        engine.dispose()

    app = FastAPI(title="ISL Exam API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    vision = None
    if settings.gemini_api_key:
        ev = settings.evaluation
        vision = GeminiVisionClient(settings.gemini_api_key, ev.models, ev.request_timeout_s, ev.rate_limit_backoff_s)
    llm = GroqChatClient(settings.groq_api_key, settings.groq_model) if settings.groq_api_key else None

    if settings.cloudinary_configured:
        upload_store = CloudinaryUploadStore(
            settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret
        )
    else:
        upload_store = LocalUploadStore(media_dir, settings.public_base_url)

    app.state.settings = settings
    app.state.store = SqlExamStore(make_session_factory(engine))
    app.state.gateway = EvaluationGateway(vision, settings.evaluation)
    app.state.bank = QuestionBank(llm)
    app.state.uploads = upload_store

    app.include_router(analysis.router)
    app.include_router(questions.router)
    app.include_router(exams.router)
    app.include_router(sessions.router)
    app.include_router(uploads.router)
    app.include_router(letters.router)
    app.include_router(health.router)
    app.include_router(debug.router)
    app.include_router(ws_router)

    app.mount("/media", StaticFiles(directory=str(media_dir)), name="media")
    return app
