import json
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func

from app.backend.evaluation.policy import EvaluationVerdict
from .models import ExamAnswer, ExamResultRecord, ExamSession, LetterProgress


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class SetStatistics:
    total_attempts: int
    average_score: float
    completion_rate: float


@dataclass(frozen=True)
class Progress:
    completed_letters: List[str]
    updated_at: Optional[datetime]


class ExamStore(ABC):
    """Persistence contract for exam sessions, answers, results and letter progress."""

    @abstractmethod
    def create_session(self, set_id: int, user_id: Optional[str] = None, total_questions: int = 10) -> ExamSession: ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ExamSession]: ...

    @abstractmethod
    def save_answer(self, session_id: str, question_id: int, selected_answer: str = "",
                    image_url: Optional[str] = None, video_url: Optional[str] = None,
                    skipped: bool = False, verdict: Optional[EvaluationVerdict] = None) -> ExamAnswer: ...

    @abstractmethod
    def get_answers(self, session_id: str) -> List[ExamAnswer]: ...

    @abstractmethod
    def complete_session(self, session_id: str, score: int) -> bool: ...

    @abstractmethod
    def save_result(self, session_id: str, score: int, total_questions: int, feedback: list) -> ExamResultRecord: ...

    @abstractmethod
    def get_result(self, session_id: str) -> Optional[ExamResultRecord]: ...

    @abstractmethod
    def get_user_history(self, user_id: str) -> List[ExamSession]: ...

    @abstractmethod
    def get_set_statistics(self, set_id: int) -> SetStatistics: ...

    @abstractmethod
    def cleanup_old_sessions(self, older_than_hours: float = 24) -> int: ...

    @abstractmethod
    def get_progress(self, user_id: str) -> Progress: ...

    @abstractmethod
    def mark_letter(self, user_id: str, letter: str, completed: bool) -> Progress: ...

    @abstractmethod
    def reset_progress(self, user_id: str) -> Progress: ...

    def toggle_letter(self, user_id: str, letter: str) -> bool:
        completed = letter.upper() not in self.get_progress(user_id).completed_letters
        self.mark_letter(user_id, letter, completed)
        return completed


class SqlExamStore(ExamStore):
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _db(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_session(self, set_id, user_id=None, total_questions=10):
        session_id = f"session_{set_id}_{int(utcnow().timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"
        with self._db() as db:
            s = ExamSession(session_id=session_id, set_id=set_id, user_id=user_id,
                            started_at=utcnow(), total_questions=total_questions)
            db.add(s)
        return s

    def get_session(self, session_id):
        with self._db() as db:
            return db.get(ExamSession, session_id)

    def save_answer(self, session_id, question_id, selected_answer="", image_url=None, video_url=None,
                    skipped=False, verdict=None):
        with self._db() as db:
            if db.get(ExamSession, session_id) is None:
                raise KeyError(session_id)
            answer = db.query(ExamAnswer).filter_by(session_id=session_id, question_id=question_id).first()
            if answer is None:
                answer = ExamAnswer(session_id=session_id, question_id=question_id)
                db.add(answer)
            answer.selected_answer = selected_answer or ""
            answer.image_url = image_url
            answer.video_url = video_url
            answer.skipped = skipped
            answer.answered_at = utcnow()
            answer.is_correct = verdict.is_correct if verdict else None
            answer.confidence = verdict.confidence if verdict else None
            answer.detected_label = verdict.detected_label if verdict else None
            answer.rationale = verdict.rationale if verdict else None
            answer.feedback = verdict.feedback if verdict else None
        return answer

    def get_answers(self, session_id):
        with self._db() as db:
            return db.query(ExamAnswer).filter_by(session_id=session_id).order_by(ExamAnswer.question_id).all()

    def complete_session(self, session_id, score):
        with self._db() as db:
            s = db.get(ExamSession, session_id)
            if s is None:
                return False
            s.completed_at = utcnow()
            s.score = score
        return True

    def save_result(self, session_id, score, total_questions, feedback):
        percentage = round(score * 100.0 / total_questions, 1) if total_questions else 0.0
        payload = json.dumps(list(feedback), default=str)
        with self._db() as db:
            if db.get(ExamSession, session_id) is None:
                raise KeyError(session_id)
            r = db.get(ExamResultRecord, session_id)
            if r is None:
                r = ExamResultRecord(session_id=session_id)
                db.add(r)
            r.score = score
            r.total_questions = total_questions
            r.percentage = percentage
            r.completed_at = utcnow()
            r.feedback_json = payload
        return r

    def get_result(self, session_id):
        with self._db() as db:
            return db.get(ExamResultRecord, session_id)

    def get_user_history(self, user_id):
        if not user_id:
            return []
        with self._db() as db:
            return (
                db.query(ExamSession)
                .filter_by(user_id=user_id)
                .order_by(ExamSession.started_at.desc())
                .all()
            )

    def get_set_statistics(self, set_id):
        with self._db() as db:
            attempts = (
                db.query(func.count(ExamSession.session_id))
                .filter(ExamSession.set_id == set_id)
                .scalar() or 0
            )
            completed = (
                db.query(func.count(ExamSession.session_id))
                .filter(ExamSession.set_id == set_id, ExamSession.completed_at.isnot(None))
                .scalar() or 0
            )
            avg = (
                db.query(func.avg(ExamSession.score))
                .filter(ExamSession.set_id == set_id, ExamSession.completed_at.isnot(None),
                        ExamSession.score.isnot(None))
                .scalar()
            )
        return SetStatistics(
            total_attempts=attempts,
            average_score=float(avg or 0.0),
            completion_rate=(completed / attempts * 100.0) if attempts else 0.0,
        )

    def cleanup_old_sessions(self, older_than_hours=24):
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        with self._db() as db:
            stale = (
                db.query(ExamSession)
                .filter(ExamSession.started_at < cutoff, ExamSession.completed_at.is_(None))
                .all()
            )
            for s in stale:
                db.delete(s)
            return len(stale)

    def _progress(self, db, user_id) -> Progress:
        rows = db.query(LetterProgress).filter_by(user_id=user_id).order_by(LetterProgress.letter).all()
        updated = max((r.updated_at for r in rows if r.updated_at), default=None)
        return Progress([r.letter for r in rows], updated)

    def get_progress(self, user_id):
        with self._db() as db:
            return self._progress(db, user_id)

    def mark_letter(self, user_id, letter, completed):
        letter = letter.strip().upper()
        with self._db() as db:
            row = db.query(LetterProgress).filter_by(user_id=user_id, letter=letter).first()
            if completed and row is None:
                db.add(LetterProgress(user_id=user_id, letter=letter, updated_at=utcnow()))
            elif not completed and row is not None:
                db.delete(row)
            db.flush()
            return self._progress(db, user_id)

    def reset_progress(self, user_id):
        with self._db() as db:
            db.query(LetterProgress).filter_by(user_id=user_id).delete()
            return Progress([], utcnow())
