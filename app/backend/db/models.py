from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship
from . import Base


class ExamSession(Base):
    __tablename__ = 'exam_sessions'

    session_id = Column(String(64), primary_key=True)
    set_id = Column(Integer, index=True, nullable=False)
    user_id = Column(String(100), index=True, nullable=True)
    started_at = Column(DateTime(), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime, nullable=True)
    score = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=False, default=10)

    answers = relationship('ExamAnswer', back_populates='session', cascade='all, delete-orphan',
                           order_by='ExamAnswer.question_id')
    result = relationship('ExamResultRecord', back_populates='session', uselist=False,
                          cascade='all, delete-orphan')


class ExamAnswer(Base):
    __tablename__ = 'exam_answers'
    __table_args__ = (
        UniqueConstraint('session_id', 'question_id', name='uq_answers_session_question'),
    )

    answer_id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey('exam_sessions.session_id'), index=True, nullable=False)
    question_id = Column(Integer, nullable=False)
    selected_answer = Column(Text, nullable=False, default='')
    image_url = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)
    skipped = Column(Boolean, nullable=False, default=False)

    is_correct = Column(Boolean, nullable=True)
    confidence = Column(Integer, nullable=True)
    detected_label = Column(String(20), nullable=True)
    rationale = Column(Text, nullable=True)
    feedback = Column(Text, nullable=True)

    answered_at = Column(DateTime(), server_default=func.now())

    session = relationship('ExamSession', back_populates='answers')


class ExamResultRecord(Base):
    __tablename__ = 'exam_results'

    session_id = Column(String(64), ForeignKey('exam_sessions.session_id'), primary_key=True)
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=False)
    completed_at = Column(DateTime(), server_default=func.now())
    feedback_json = Column(Text, nullable=False, default='[]')

    session = relationship('ExamSession', back_populates='result')


class LetterProgress(Base):
    __tablename__ = 'letter_progress'
    __table_args__ = (
        UniqueConstraint('user_id', 'letter', name='uq_progress_user_letter'),
    )

    progress_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), index=True, nullable=False)
    letter = Column(String(1), nullable=False)
    updated_at = Column(DateTime(), server_default=func.now(), onupdate=func.now())
