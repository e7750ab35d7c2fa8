import typing

import pydantic

from lesson_progression.utils.base_types import (
    AssessmentId,
    CategoryName,
    LessonId,
    QuestionId,
    UnitId,
)

DEFAULT_PASSING_SCORE = 70


class LearningUnitModel(pydantic.BaseModel):
    """
    A topic or lesson in an ordered learning sequence.
    Ordinal is unique within the parent lesson and totally orders the sequence.
    """

    lessonId: LessonId = pydantic.Field(description="Partition Key - parent sequence")
    unitId: UnitId = pydantic.Field(description="Sort Key")
    ordinal: int = pydantic.Field(..., ge=0)
    assessmentId: typing.Optional[AssessmentId] = None
    title: typing.Optional[str] = None
    category: typing.Optional[CategoryName] = pydantic.Field(
        default=None, description="Category of the parent lesson, copied onto the unit for analytics"
    )


class QuestionModel(pydantic.BaseModel):
    questionId: QuestionId
    prompt: str = ""
    options: list[str] = pydantic.Field(default_factory=list)
    correctAnswer: str


class AssessmentModel(pydantic.BaseModel):
    """A quiz owned by exactly one unit."""

    unitId: UnitId = pydantic.Field(description="Partition Key - owning unit")
    assessmentId: AssessmentId
    questions: list[QuestionModel] = pydantic.Field(default_factory=list)
    passingScore: int = pydantic.Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100)
    title: typing.Optional[str] = None
