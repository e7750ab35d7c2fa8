import logging
import typing

from lesson_progression.models.content_models import (
    DEFAULT_PASSING_SCORE,
    AssessmentModel,
    LearningUnitModel,
)
from lesson_progression.models.progress_models import (
    AttemptRecordModel,
    CategoryScoreModel,
    CategoryStatsModel,
    ReadRecordModel,
    StudentScoreSummaryModel,
    UserProgressSnapshotModel,
)
from lesson_progression.progression.levels import DEFAULT_LEVEL_STEP, level_for_xp
from lesson_progression.progression.scoring import round_ratio
from lesson_progression.utils.base_types import AssessmentId, CategoryName, UnitId, UserId
from lesson_progression.utils.errors import InvalidArgumentError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# Which attempts count when a learner took the same assessment more than once.
AttemptPolicy = typing.Literal["all", "best", "latest"]

TOP_K = 2
STRONG_CUTOFF = 80
WEAK_CUTOFF = 70
RANKING_LIMIT = 5


def build_category_index(
    units: typing.Iterable[LearningUnitModel],
    assessments: typing.Iterable[AssessmentModel] = (),
) -> dict[AssessmentId, CategoryName]:
    """
    Walks assessment -> unit -> lesson category.
    Units that reference an assessment id map it directly; assessment records fill in the rest.
    """
    category_by_unit: dict[UnitId, CategoryName] = {}
    index: dict[AssessmentId, CategoryName] = {}
    for unit in units:
        if unit.category is None:
            continue
        category_by_unit[unit.unitId] = unit.category
        if unit.assessmentId is not None:
            index[unit.assessmentId] = unit.category

    for assessment in assessments:
        category = category_by_unit.get(assessment.unitId)
        if category is not None:
            index.setdefault(assessment.assessmentId, category)
    return index


def select_attempts(
    attempts: typing.Iterable[AttemptRecordModel],
    attempt_policy: AttemptPolicy = "all",
) -> list[AttemptRecordModel]:
    """
    Applies the attempt policy. "all" keeps the log as is; "best" and "latest" keep one
    attempt per assessment. The result is ordered by submission time.
    """
    if attempt_policy not in ("all", "best", "latest"):
        raise InvalidArgumentError(f"Unknown attempt policy: {attempt_policy}")

    ordered = sorted(attempts, key=lambda a: (a.submittedAt, a.attemptId))
    if attempt_policy == "all":
        return ordered

    chosen: dict[AssessmentId, AttemptRecordModel] = {}
    for attempt in ordered:
        current = chosen.get(attempt.assessmentId)
        if attempt_policy == "latest":
            chosen[attempt.assessmentId] = attempt
        elif current is None or attempt.score >= current.score:
            # best; ties go to the later attempt
            chosen[attempt.assessmentId] = attempt
    return sorted(chosen.values(), key=lambda a: (a.submittedAt, a.attemptId))


def _category_stats(
    attempts: typing.Sequence[AttemptRecordModel],
    category_of: typing.Mapping[AssessmentId, CategoryName],
    passing_scores: typing.Mapping[AssessmentId, int],
) -> list[CategoryStatsModel]:
    totals: dict[CategoryName, list[int]] = {}  # name -> [score sum, count, passed]
    for attempt in attempts:
        category = category_of.get(attempt.assessmentId)
        if category is None:
            continue
        entry = totals.setdefault(category, [0, 0, 0])
        entry[0] += attempt.score
        entry[1] += 1
        if attempt.score >= passing_scores.get(attempt.assessmentId, DEFAULT_PASSING_SCORE):
            entry[2] += 1

    stats = [
        CategoryStatsModel(
            name=name,
            avgScore=round_ratio(score_sum, count),
            quizCount=count,
            passRate=round_ratio(100 * passed, count),
        )
        for name, (score_sum, count, passed) in totals.items()
    ]
    stats.sort(key=lambda c: (-c.avgScore, c.name))
    return stats


def aggregate(
    user_id: UserId,
    attempts: typing.Iterable[AttemptRecordModel],
    category_of: typing.Mapping[AssessmentId, CategoryName],
    *,
    passing_scores: typing.Optional[typing.Mapping[AssessmentId, int]] = None,
    total_xp: int = 0,
    read_records: typing.Iterable[ReadRecordModel] = (),
    attempt_policy: AttemptPolicy = "all",
    top_k: int = TOP_K,
    strong_cutoff: int = STRONG_CUTOFF,
    weak_cutoff: int = WEAK_CUTOFF,
    level_step: int = DEFAULT_LEVEL_STEP,
) -> UserProgressSnapshotModel:
    """
    Builds a learner's progress snapshot from their attempt log.

    Attempts whose assessment has no known category still count toward the overall
    average and quiz count, but toward no category. Strengths are the top `top_k`
    categories scoring at least `strong_cutoff`; weaknesses are the bottom `top_k`
    scoring below `weak_cutoff`. Output depends only on the arguments.
    """
    if top_k < 0:
        raise InvalidArgumentError(f"top_k cannot be negative, got {top_k}")

    selected = select_attempts(attempts, attempt_policy)
    categories = _category_stats(selected, category_of, passing_scores or {})

    strengths = [c for c in categories[:top_k] if c.avgScore >= strong_cutoff]
    ascending = sorted(categories, key=lambda c: (c.avgScore, c.name))
    weaknesses = [c for c in ascending[:top_k] if c.avgScore < weak_cutoff]

    completed_units = {r.unitId for r in read_records if r.completed}
    score_sum = sum(a.score for a in selected)

    snapshot = UserProgressSnapshotModel(
        userId=user_id,
        totalXp=total_xp,
        level=level_for_xp(total_xp, level_step),
        completedUnitCount=len(completed_units),
        quizzesTaken=len(selected),
        averageScore=round_ratio(score_sum, len(selected)) if selected else 0,
        categories=categories,
        strengths=strengths,
        weaknesses=weaknesses,
    )
    _LOGGER.debug(f"Aggregated {len(selected)} attempts into {len(categories)} categories for user {user_id}")
    return snapshot


def summarize_student(
    user_id: UserId,
    attempts: typing.Sequence[AttemptRecordModel],
    category_of: typing.Mapping[AssessmentId, CategoryName],
    *,
    username: typing.Optional[str] = None,
    section: typing.Optional[str] = None,
) -> StudentScoreSummaryModel:
    """Per-student row of the class analytics view: overall average and weakest category."""
    totals: dict[CategoryName, tuple[int, int]] = {}
    for attempt in attempts:
        category = category_of.get(attempt.assessmentId)
        if category is not None:
            score_sum, count = totals.get(category, (0, 0))
            totals[category] = (score_sum + attempt.score, count + 1)

    categories = sorted(
        (CategoryScoreModel(name=name, score=round_ratio(s, n)) for name, (s, n) in totals.items()),
        key=lambda c: c.name,
    )
    weakest = min(categories, key=lambda c: (c.score, c.name)) if categories else None

    return StudentScoreSummaryModel(
        userId=user_id,
        username=username,
        section=section,
        avgScore=round_ratio(sum(a.score for a in attempts), len(attempts)) if attempts else 0,
        quizCount=len(attempts),
        categories=categories,
        weakestCategory=weakest,
    )


def rank_students(
    summaries: typing.Iterable[StudentScoreSummaryModel],
    limit: int = RANKING_LIMIT,
    attention_cutoff: int = WEAK_CUTOFF,
) -> tuple[list[StudentScoreSummaryModel], list[StudentScoreSummaryModel]]:
    """
    Splits a class into top performers and students needing attention.
    Students who have not taken any quiz appear in neither list.
    """
    active = [s for s in summaries if s.quizCount > 0]
    top_performers = sorted(active, key=lambda s: (-s.avgScore, s.userId))[:limit]
    lowest = sorted(active, key=lambda s: (s.avgScore, s.userId))[:limit]
    needs_attention = [s for s in lowest if s.avgScore < attention_cutoff]
    return top_performers, needs_attention
