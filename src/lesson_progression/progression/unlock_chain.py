import logging
import typing

from lesson_progression.models.content_models import DEFAULT_PASSING_SCORE, LearningUnitModel
from lesson_progression.models.progress_models import AttemptRecordModel, UnitUnlockStateModel
from lesson_progression.utils.base_types import AssessmentId, UnitId
from lesson_progression.utils.errors import InvalidArgumentError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# How a unit without an assessment gates the unit after it:
#  - "auto-unlock": it never blocks progression
#  - "require-read": the learner must have finished reading it
UngatedPolicy = typing.Literal["auto-unlock", "require-read"]


def passed_assessment_ids(
    attempts: typing.Iterable[AttemptRecordModel],
    passing_scores: typing.Optional[typing.Mapping[AssessmentId, int]] = None,
) -> set[AssessmentId]:
    """
    Derives the pass set from the attempt log. An assessment is passed if any attempt
    reached that assessment's passing score (70 when not known).
    """
    passing_scores = passing_scores or {}
    passed: set[AssessmentId] = set()
    for attempt in attempts:
        threshold = passing_scores.get(attempt.assessmentId, DEFAULT_PASSING_SCORE)
        if attempt.score >= threshold:
            passed.add(attempt.assessmentId)
    return passed


def _gate_of(
    unit: LearningUnitModel,
    known_assessment_ids: typing.Optional[typing.Collection[AssessmentId]],
) -> typing.Optional[AssessmentId]:
    if unit.assessmentId is None:
        return None
    if known_assessment_ids is not None and unit.assessmentId not in known_assessment_ids:
        _LOGGER.warning(
            f"Unit {unit.unitId} references missing assessment {unit.assessmentId}. Treating it as ungated."
        )
        return None
    return unit.assessmentId


def compute_unlock_state(
    units: typing.Sequence[LearningUnitModel],
    pass_records: typing.Collection[AssessmentId],
    *,
    known_assessment_ids: typing.Optional[typing.Collection[AssessmentId]] = None,
    completed_reads: typing.Optional[typing.Collection[UnitId]] = None,
    ungated_policy: UngatedPolicy = "auto-unlock",
) -> list[UnitUnlockStateModel]:
    """
    Computes lock and completion flags for one ordered sequence of units.

    The first unit is always unlocked. Every later unit is unlocked iff the unit before it
    is satisfied: its assessment was passed, or it has no assessment and the ungated policy
    lets it through. A unit is completed when its own assessment was passed, or, for units
    without an assessment, when it has been read.

    :param units: Units of a single parent sequence, in any order; sorted here by ordinal.
    :param pass_records: Ids of assessments the learner has passed.
    :param known_assessment_ids: If given, assessment references outside this set are dangling
        and treated as "no assessment".
    :param completed_reads: Ids of units the learner has finished reading.
    :param ungated_policy: "auto-unlock" or "require-read".
    :raises InvalidArgumentError: On duplicate ordinals or an unknown policy.
    """
    if ungated_policy not in ("auto-unlock", "require-read"):
        raise InvalidArgumentError(f"Unknown ungated unit policy: {ungated_policy}")

    ordered = sorted(units, key=lambda u: u.ordinal)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.ordinal == current.ordinal:
            raise InvalidArgumentError(
                f"Units {previous.unitId} and {current.unitId} share ordinal {current.ordinal}"
            )

    reads = completed_reads if completed_reads is not None else ()
    states: list[UnitUnlockStateModel] = []
    previous_satisfied = True

    for unit in ordered:
        gate = _gate_of(unit, known_assessment_ids)
        if gate is not None:
            completed = gate in pass_records
            satisfied = completed
        else:
            completed = unit.unitId in reads
            satisfied = ungated_policy == "auto-unlock" or completed

        states.append(
            UnitUnlockStateModel(
                unitId=unit.unitId,
                ordinal=unit.ordinal,
                assessmentId=gate,
                locked=not previous_satisfied,
                completed=completed,
            )
        )
        previous_satisfied = satisfied

    return states
