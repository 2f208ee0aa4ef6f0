from fastapi import Request

from app.backend.config import Settings
from app.backend.db.store import ExamStore
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.questions.bank import QuestionBank
from app.backend.uploads import UploadStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ExamStore:
    return request.app.state.store


def get_gateway(request: Request) -> EvaluationGateway:
    return request.app.state.gateway


def get_bank(request: Request) -> QuestionBank:
    return request.app.state.bank


def get_uploads(request: Request) -> UploadStore:
    return request.app.state.uploads
