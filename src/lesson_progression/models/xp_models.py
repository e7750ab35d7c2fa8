import typing

import pydantic

from lesson_progression.utils.base_types import IsoTimestamp, UnitId, UserId

AwardKind = typing.Literal["topic-read", "quiz-pass"]

TOPIC_READ: AwardKind = "topic-read"
QUIZ_PASS: AwardKind = "quiz-pass"


class XpPolicy(pydantic.BaseModel):
    """
    Tunable constants for XP rewards and leveling.
    Defaults are the values the mobile client showed to learners.
    """

    level_step: int = pydantic.Field(default=500, gt=0, description="XP needed per level")
    read_xp: int = pydantic.Field(default=50, ge=0, description="Flat reward for reading a topic")
    read_xp_per_ordinal: int = pydantic.Field(
        default=0, ge=0, description="Extra read reward per position of the unit in its lesson"
    )
    quiz_xp_base: int = pydantic.Field(default=0, ge=0, description="Flat part of a quiz pass reward")
    quiz_xp_per_ordinal: int = pydantic.Field(
        default=0, ge=0, description="Extra quiz reward per position of the unit in its lesson"
    )
    quiz_xp_multiplier: float = pydantic.Field(default=2.0, ge=0, description="XP per score percentage point")
    quiz_score_offset: int = pydantic.Field(
        default=0, ge=0, le=100, description="Score points below this earn no score bonus"
    )
    quiz_xp_max: int = pydantic.Field(default=200, ge=0, description="Cap on XP for a single quiz pass")
    read_completion_threshold: float = pydantic.Field(
        default=0.9, gt=0, le=1, description="Scroll fraction at which a topic counts as read"
    )


class XpAwardModel(pydantic.BaseModel):
    """One entry of the persisted award ledger. Written at most once per (user, unit, kind)."""

    userId: UserId
    awardKey: str = pydantic.Field(description="Sort key, '{unitId}#{kind}'")
    unitId: UnitId
    unitOrdinal: int = pydantic.Field(..., ge=0)
    kind: AwardKind
    amount: int = pydantic.Field(..., ge=0)
    awardedAt: IsoTimestamp


class XpResultModel(pydantic.BaseModel):
    xpAwarded: int = pydantic.Field(..., ge=0)
    totalXp: int = pydantic.Field(..., ge=0)
    level: int = pydantic.Field(..., ge=1)
    leveledUp: bool


class LevelProgressModel(pydantic.BaseModel):
    level: int = pydantic.Field(..., ge=1)
    currentLevelXp: int = pydantic.Field(..., ge=0, description="Threshold of the current level")
    nextLevelXp: int = pydantic.Field(..., ge=0, description="Threshold of the next level")
    xpIntoLevel: int = pydantic.Field(..., ge=0)
    xpToNextLevel: int = pydantic.Field(..., gt=0)
    progressFraction: float = pydantic.Field(..., ge=0, lt=1)


class XpStatusModel(pydantic.BaseModel):
    userId: UserId
    totalXp: int = pydantic.Field(..., ge=0)
    progress: LevelProgressModel
