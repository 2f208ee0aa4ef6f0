from fastapi import APIRouter, Depends, HTTPException

from app.backend.api.deps import get_store
from app.backend.api.schemas.progress import LetterOut, ProgressOut, ProgressUpdateIn, ToggleOut
from app.backend.db.store import ExamStore, Progress
from app.backend.evaluation.gateway import ISL_DESCRIPTIONS

router = APIRouter(prefix="/api/v1", tags=["letters"])


def _letter_or_400(letter: str) -> str:
    letter = letter.strip().upper()
    if letter not in ISL_DESCRIPTIONS:
        raise HTTPException(400, "Letter must be a single character A-Z")
    return letter


def _progress_out(user_id: str, progress: Progress) -> ProgressOut:
    return ProgressOut(user_id=user_id, completed_letters=progress.completed_letters, updated_at=progress.updated_at)


@router.get("/letters/{letter}", response_model=LetterOut)
def get_letter(letter: str):
    letter = _letter_or_400(letter)
    return LetterOut(letter=letter, description=ISL_DESCRIPTIONS[letter])


@router.get("/progress/{user_id}", response_model=ProgressOut)
def get_progress(user_id: str, store: ExamStore = Depends(get_store)):
    return _progress_out(user_id, store.get_progress(user_id))


@router.put("/progress/{user_id}/{letter}", response_model=ProgressOut)
def mark_letter(user_id: str, letter: str, payload: ProgressUpdateIn, store: ExamStore = Depends(get_store)):
    letter = _letter_or_400(letter)
    return _progress_out(user_id, store.mark_letter(user_id, letter, payload.completed))


@router.post("/progress/{user_id}/{letter}/toggle", response_model=ToggleOut)
def toggle_letter(user_id: str, letter: str, store: ExamStore = Depends(get_store)):
    letter = _letter_or_400(letter)
    completed = store.toggle_letter(user_id, letter)
    return ToggleOut(letter=letter, completed=completed, progress=_progress_out(user_id, store.get_progress(user_id)))


@router.delete("/progress/{user_id}", response_model=ProgressOut)
def reset_progress(user_id: str, store: ExamStore = Depends(get_store)):
    return _progress_out(user_id, store.reset_progress(user_id))
