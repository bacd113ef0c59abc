from pydantic import BaseModel, Field, validator
from typing import List, Optional, Dict
from datetime import datetime
from enum import Enum

from credilink.config import DEFAULT_PASSING_SCORE

# ==================== ENUMS ====================

class CourseLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

class ModuleStatus(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    AVAILABLE = "available"
    LOCKED = "locked"

# ==================== COURSE MODELS ====================

class QuizQuestion(BaseModel):
    id: Optional[str] = None
    text: str
    options: List[str]
    correct_option_index: int
    explanation: Optional[str] = None

class Quiz(BaseModel):
    questions: List[QuizQuestion] = []
    passing_score: Optional[int] = None  # falls back to DEFAULT_PASSING_SCORE

class FinalTest(BaseModel):
    questions: List[QuizQuestion] = []
    passing_score: int = DEFAULT_PASSING_SCORE

class CourseModule(BaseModel):
    module_id: str
    title: str
    description: str = ""
    video_url: str = ""
    duration: int = 0  # minutes
    order: int = 0
    content: Optional[str] = None
    quiz: Quiz = Quiz()

class ModuleCreate(BaseModel):
    module_id: Optional[str] = None
    title: str
    description: str = ""
    video_url: str = ""
    duration: int = 0
    order: Optional[int] = None
    content: Optional[str] = None
    quiz: Quiz = Quiz()

    @validator("module_id")
    def validate_module_id(cls, v):
        # module ids become Mongo field names inside progress maps
        if v is not None and (not v or "." in v or v.startswith("$")):
            raise ValueError("module_id must be non-empty and must not contain '.' or start with '$'")
        return v

class CourseCreate(BaseModel):
    title: str
    description: str = ""
    cover_image: str = ""
    instructor: str = ""
    level: CourseLevel = CourseLevel.BEGINNER
    duration: int = 0  # hours
    modules: List[ModuleCreate] = []
    final_test: FinalTest = FinalTest()

    @validator("modules")
    def validate_unique_modules(cls, v):
        ids = [m.module_id for m in v if m.module_id]
        if len(ids) != len(set(ids)):
            raise ValueError("module ids must be unique within a course")
        return v

class Course(BaseModel):
    course_id: str
    title: str
    description: str = ""
    cover_image: str = ""
    instructor: str = ""
    level: CourseLevel = CourseLevel.BEGINNER
    duration: int = 0
    enrolled_count: int = 0
    modules: List[CourseModule] = []
    final_test: FinalTest = FinalTest()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def ordered_modules(self) -> List[CourseModule]:
        return sorted(self.modules, key=lambda m: m.order)

    @property
    def module_ids(self) -> List[str]:
        return [m.module_id for m in self.ordered_modules()]

    def get_module(self, module_id: str) -> Optional[CourseModule]:
        return next((m for m in self.modules if m.module_id == module_id), None)

# ==================== PROGRESS MODELS ====================

class QuizAttempt(BaseModel):
    """
    One graded quiz submission
    Immutable once recorded
    """
    attempted_at: datetime = Field(default_factory=datetime.utcnow)
    score: int
    answers: Dict[str, int] = {}  # question index (as str) -> selected option
    passed: bool
    attempt_number: int

class FinalTestAttempt(BaseModel):
    attempted_at: datetime = Field(default_factory=datetime.utcnow)
    score: int
    passed: bool
    attempt_number: int

class Progress(BaseModel):
    """
    Authoritative per (user, course) completion state
    """
    progress_id: str  # {user_id}_{course_id}
    user_id: str
    course_id: str
    enrolled_at: datetime
    last_accessed_at: datetime
    completed_modules: List[str] = []
    module_scores: Dict[str, int] = {}  # latest attempt per module
    quiz_attempts: Dict[str, List[QuizAttempt]] = {}
    attempt_counts: Dict[str, int] = {}
    final_test_score: Optional[int] = None
    final_test_passed: bool = False
    final_test_attempts: List[FinalTestAttempt] = []
    final_test_attempt_count: int = 0
    certificate_id: Optional[str] = None
    completed_at: Optional[datetime] = None

    # the history $push is a separate write from the counter $inc
    @validator("quiz_attempts")
    def order_quiz_attempts(cls, v):
        return {m: sorted(attempts, key=lambda a: a.attempt_number) for m, attempts in v.items()}

    @validator("final_test_attempts")
    def order_final_attempts(cls, v):
        return sorted(v, key=lambda a: a.attempt_number)

# ==================== CREDENTIAL MODELS ====================

CREDENTIAL_SCHEMA_VERSION = 1

class Credential(BaseModel):
    credential_id: str
    credential_key: str  # {user_id}:{course_id}, unique
    schema_version: int = CREDENTIAL_SCHEMA_VERSION
    user_id: str
    course_id: str
    course_name: str
    issue_date: datetime
    expiry_date: Optional[datetime] = None
    skills: List[str] = []
    certificate_url: Optional[str] = None
    blockchain_verified: bool = False
    blockchain_tx_hash: Optional[str] = None
    issuer: str
    issuer_id: str

# ==================== LEADERBOARD MODELS ====================

class LeaderboardEntry(BaseModel):
    user_id: str
    user_name: str
    user_image: str = ""
    completed_courses: int = 0
    total_score: int = 0
    earned_certificates: int = 0
    updated_at: Optional[datetime] = None

class RankedEntry(BaseModel):
    rank: int
    user_id: str
    user_name: str
    user_image: str = ""
    completed_courses: int
    total_score: int

# ==================== REQUEST / RESULT MODELS ====================

class AnswerSubmission(BaseModel):
    answers: Dict[int, int]  # question index -> selected option index

class QuizResult(BaseModel):
    score: int
    passed: bool
    attempt_number: int

class FinalTestResult(BaseModel):
    score: int
    passed: bool
    certificate_id: Optional[str] = None

class ModuleView(BaseModel):
    course_id: str
    module: CourseModule
    status: ModuleStatus
    next_module_id: Optional[str] = None
    score: Optional[int] = None
    attempts: int = 0

class CourseProgressView(BaseModel):
    course_id: str
    title: str
    progress_percentage: int
    completed_modules: List[str]
    module_statuses: Dict[str, ModuleStatus]
    module_scores: Dict[str, int]
    final_test_unlocked: bool
    final_test_score: Optional[int] = None
    final_test_passed: bool = False
    certificate_id: Optional[str] = None

class QuizGenerationRequest(BaseModel):
    transcript: Optional[str] = None
    video_url: Optional[str] = None
    num_questions: int = Field(5, ge=1, le=20)

class FinalTestGenerationRequest(BaseModel):
    num_questions: int = Field(15, ge=1, le=50)
    passing_score: int = Field(DEFAULT_PASSING_SCORE, ge=0, le=100)
