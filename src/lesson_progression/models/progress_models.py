import typing

from pydantic import BaseModel, Field

from lesson_progression.models.xp_models import XpResultModel
from lesson_progression.utils.base_types import (
    AssessmentId,
    AttemptId,
    CategoryName,
    IsoTimestamp,
    LessonId,
    QuestionId,
    UnitId,
    UserId,
)


class AttemptRecordModel(BaseModel):
    """One scored submission of answers. Append-only; never updated."""

    userId: UserId
    attemptId: AttemptId = Field(description="Sort key, '{submittedAt}#{assessmentId}#{uuid}'")
    assessmentId: AssessmentId
    score: int = Field(..., ge=0, le=100)
    answers: dict[QuestionId, str] = Field(default_factory=dict)
    submittedAt: IsoTimestamp


class ReadRecordModel(BaseModel):
    userId: UserId
    unitId: UnitId
    completed: bool = False
    completedAt: typing.Optional[IsoTimestamp] = None


class QuizSubmissionInputModel(BaseModel):
    answers: dict[QuestionId, str]


class ReadProgressInputModel(BaseModel):
    scrollProgress: float = Field(..., ge=0, le=1)


class QuizSubmissionResultModel(BaseModel):
    attempt: AttemptRecordModel
    passed: bool
    passingScore: int
    xp: XpResultModel


class ReadProgressResultModel(BaseModel):
    unitId: UnitId
    completed: bool
    readRecord: typing.Optional[ReadRecordModel] = None
    xp: typing.Optional[XpResultModel] = None


class UnitUnlockStateModel(BaseModel):
    unitId: UnitId
    ordinal: int
    assessmentId: typing.Optional[AssessmentId] = None
    locked: bool
    completed: bool


class LessonUnlockStateModel(BaseModel):
    lessonId: LessonId
    units: list[UnitUnlockStateModel]
    completedCount: int
    totalCount: int


class CategoryStatsModel(BaseModel):
    name: CategoryName
    avgScore: int
    quizCount: int
    passRate: int


class CategoryScoreModel(BaseModel):
    name: CategoryName
    score: int


class UserProgressSnapshotModel(BaseModel):
    """Derived on demand from attempts, reads and the award ledger. Never persisted."""

    userId: UserId
    totalXp: int = 0
    level: int = 1
    completedUnitCount: int = 0
    quizzesTaken: int = 0
    averageScore: int = 0
    categories: list[CategoryStatsModel] = Field(default_factory=list)
    strengths: list[CategoryStatsModel] = Field(default_factory=list)
    weaknesses: list[CategoryStatsModel] = Field(default_factory=list)


class StudentScoreSummaryModel(BaseModel):
    userId: UserId
    username: typing.Optional[str] = None
    section: typing.Optional[str] = None
    avgScore: int
    quizCount: int
    categories: list[CategoryScoreModel] = Field(default_factory=list)
    weakestCategory: typing.Optional[CategoryScoreModel] = None


class ClassAnalyticsModel(BaseModel):
    """Instructor view over a class: one row per student plus the two ranked lists."""

    section: typing.Optional[str] = None
    studentCount: int
    students: list[StudentScoreSummaryModel] = Field(default_factory=list)
    topPerformers: list[StudentScoreSummaryModel] = Field(default_factory=list)
    needsAttention: list[StudentScoreSummaryModel] = Field(default_factory=list)
