from fastapi import APIRouter, Depends, Query

from app.backend.api.deps import get_settings, get_store
from app.backend.config import Settings
from app.backend.db.store import ExamStore

router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/env")
def debug_env(settings: Settings = Depends(get_settings)):
    # presence only, never the values
    return {
        "geminiConfigured": bool(settings.gemini_api_key),
        "groqConfigured": bool(settings.groq_api_key),
        "cloudinaryConfigured": settings.cloudinary_configured,
        "database": settings.database_url.split(":", 1)[0],
        "models": list(settings.evaluation.models),
        "acceptanceFloor": settings.evaluation.acceptance_floor,
        "faceExclusion": settings.analyzer.face_exclusion,
    }


@router.post("/cleanup")
def debug_cleanup(hours: float = Query(24, gt=0), store: ExamStore = Depends(get_store)):
    return {"removed": store.cleanup_old_sessions(hours)}
