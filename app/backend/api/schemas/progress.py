from datetime import datetime
from typing import List, Optional

from .base import CamelModel


class LetterOut(CamelModel):
    letter: str
    description: str


class ProgressOut(CamelModel):
    user_id: str
    completed_letters: List[str]
    updated_at: Optional[datetime] = None


class ProgressUpdateIn(CamelModel):
    completed: bool = True


class ToggleOut(CamelModel):
    letter: str
    completed: bool
    progress: ProgressOut
