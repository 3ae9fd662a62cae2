"""
Core data models for the Trivia Quiz Bot.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 20


class Difficulty(str, Enum):
    """Question difficulty accepted by the trivia service."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    """Question type accepted by the trivia service."""
    MULTIPLE = "multiple"
    BOOLEAN = "boolean"


class SessionState(Enum):
    """Enumeration of quiz session states."""
    EMPTY = "empty"
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTED = "submitted"


class SubmitTrigger(Enum):
    """What caused a round to be submitted."""
    MANUAL = "manual"
    EXPIRED = "expired"


@dataclass(frozen=True)
class QuizConfig:
    """Options for a single round. Produced once, consumed once."""
    question_count: int
    category_id: Optional[int] = None
    difficulty: Optional[Difficulty] = None
    question_type: Optional[QuestionType] = None
    time_limit_seconds: int = 60

    def __post_init__(self):
        if isinstance(self.question_count, bool) or not isinstance(self.question_count, int):
            raise ValueError(f"question_count must be an integer, got {type(self.question_count).__name__}")
        if not MIN_QUESTION_COUNT <= self.question_count <= MAX_QUESTION_COUNT:
            raise ValueError(
                f"question_count must be between {MIN_QUESTION_COUNT} and {MAX_QUESTION_COUNT}"
            )
        if self.category_id is not None and (
            isinstance(self.category_id, bool) or not isinstance(self.category_id, int)
        ):
            raise ValueError("category_id must be an integer or None")
        if isinstance(self.time_limit_seconds, bool) or not isinstance(self.time_limit_seconds, int):
            raise ValueError("time_limit_seconds must be an integer")
        if self.time_limit_seconds < 1:
            raise ValueError("time_limit_seconds must be at least 1")
        # Accept plain strings and coerce them to the enums
        if self.difficulty is not None and not isinstance(self.difficulty, Difficulty):
            object.__setattr__(self, 'difficulty', Difficulty(self.difficulty))
        if self.question_type is not None and not isinstance(self.question_type, QuestionType):
            object.__setattr__(self, 'question_type', QuestionType(self.question_type))


@dataclass(frozen=True)
class Question:
    """A normalized trivia question with a fixed answer order."""
    id: str
    category: str
    difficulty: str
    type: str
    prompt: str
    correct_answer: str
    incorrect_answers: Tuple[str, ...]
    answer_options: Tuple[str, ...]


@dataclass(frozen=True)
class Category:
    """A trivia category offered by the remote service."""
    id: int
    name: str


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a quiz session taken between mutations."""
    state: SessionState
    questions: Tuple[Question, ...] = ()
    selections: Dict[str, str] = field(default_factory=dict)
    time_remaining: int = 0
    submitted: bool = False
    score: int = 0
    expired: bool = False

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def answered_count(self) -> int:
        return len(self.selections)

    def question_by_id(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


@dataclass(frozen=True)
class QuestionReview:
    """Outcome of one question after the round was graded."""
    question: Question
    chosen_answer: Optional[str]
    is_correct: bool


@dataclass(frozen=True)
class RoundResult:
    """Final outcome of a submitted round."""
    snapshot: SessionSnapshot
    trigger: SubmitTrigger
    reviews: List[QuestionReview]

    @property
    def score(self) -> int:
        return self.snapshot.score

    @property
    def total(self) -> int:
        return self.snapshot.total_questions
