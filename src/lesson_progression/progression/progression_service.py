import logging
import typing

from lesson_progression.dynamodb.assessments_table import AssessmentsTable
from lesson_progression.dynamodb.learning_units_table import LearningUnitsTable
from lesson_progression.dynamodb.quiz_attempts_table import QuizAttemptsTable
from lesson_progression.dynamodb.read_records_table import ReadRecordsTable
from lesson_progression.dynamodb.user_profile_table import UserProfileTable
from lesson_progression.models.content_models import AssessmentModel, LearningUnitModel
from lesson_progression.models.progress_models import (
    AttemptRecordModel,
    ClassAnalyticsModel,
    LessonUnlockStateModel,
    QuizSubmissionResultModel,
    ReadProgressResultModel,
    UserProgressSnapshotModel,
)
from lesson_progression.models.xp_models import XpStatusModel
from lesson_progression.progression.aggregator import (
    aggregate,
    build_category_index,
    rank_students,
    summarize_student,
)
from lesson_progression.progression.scoring import compute_score, is_passing
from lesson_progression.progression.unlock_chain import (
    UngatedPolicy,
    compute_unlock_state,
    passed_assessment_ids,
)
from lesson_progression.progression.xp_ledger import XpLedger
from lesson_progression.utils.base_types import (
    AssessmentId,
    CategoryName,
    LessonId,
    QuestionId,
    UnitId,
    UserId,
)
from lesson_progression.utils.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ProgressionService:
    """
    Wires the data store to the scoring, XP, unlock and aggregation rules.
    Every public method is one logical request: it re-reads what it needs and returns one result.
    """

    def __init__(
        self,
        quiz_attempts_table: QuizAttemptsTable,
        read_records_table: ReadRecordsTable,
        learning_units_table: LearningUnitsTable,
        assessments_table: AssessmentsTable,
        user_profile_table: UserProfileTable,
        xp_ledger: XpLedger,
        ungated_policy: UngatedPolicy = "auto-unlock",
    ) -> None:
        self.quiz_attempts_table = quiz_attempts_table
        self.read_records_table = read_records_table
        self.learning_units_table = learning_units_table
        self.assessments_table = assessments_table
        self.user_profile_table = user_profile_table
        self.xp_ledger = xp_ledger
        self.ungated_policy: UngatedPolicy = ungated_policy

    def _get_unit(self, unit_id: UnitId) -> LearningUnitModel:
        unit = self.learning_units_table.get_unit(unit_id)
        if unit is None:
            raise NotFoundError(f"Unit {unit_id} not found")
        return unit

    def submit_quiz_attempt(
        self,
        user_id: UserId,
        assessment_id: AssessmentId,
        answers: dict[QuestionId, str],
    ) -> QuizSubmissionResultModel:
        """
        Scores a submission, appends it to the attempt log and awards quiz XP if it passed.
        Failed attempts are still recorded.
        """
        assessment = self.assessments_table.get_assessment(assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        unit = self._get_unit(assessment.unitId)

        score = compute_score(assessment.questions, answers)
        passed = is_passing(score, assessment.passingScore)

        # fail fast on unknown users before anything is written
        self.xp_ledger.ensure_user_exists(user_id)

        attempt = self.quiz_attempts_table.insert_attempt(user_id, assessment_id, score, answers)
        xp_result = self.xp_ledger.award_for_quiz(user_id, unit.unitId, unit.ordinal, passed, score)

        _LOGGER.info(f"User {user_id} scored {score} on {assessment_id} (passed={passed})")
        return QuizSubmissionResultModel(
            attempt=attempt,
            passed=passed,
            passingScore=assessment.passingScore,
            xp=xp_result,
        )

    def record_read_progress(
        self,
        user_id: UserId,
        lesson_id: LessonId,
        unit_id: UnitId,
        scroll_progress: float,
    ) -> ReadProgressResultModel:
        """
        Reports how far a learner has scrolled through a unit. Once the completion threshold
        is reached the read record is marked completed and the reading reward is granted.
        Below the threshold nothing is written.
        """
        if scroll_progress < 0 or scroll_progress > 1:
            raise InvalidArgumentError(f"Scroll progress must be between 0 and 1, got {scroll_progress}")

        unit = self._get_unit(unit_id)
        if unit.lessonId != lesson_id:
            raise NotFoundError(f"Unit {unit_id} not found in lesson {lesson_id}")

        if scroll_progress < self.xp_ledger.policy.read_completion_threshold:
            _LOGGER.debug(f"User {user_id} at {scroll_progress:.2f} of unit {unit_id}; not complete yet")
            return ReadProgressResultModel(unitId=unit_id, completed=False)

        self.xp_ledger.ensure_user_exists(user_id)

        read_record = self.read_records_table.upsert_read_record(user_id, unit_id, completed=True)
        xp_result = self.xp_ledger.award_for_read(user_id, unit_id, unit.ordinal)
        return ReadProgressResultModel(unitId=unit_id, completed=True, readRecord=read_record, xp=xp_result)

    def _assessments_for_units(self, units: typing.Iterable[LearningUnitModel]) -> list[AssessmentModel]:
        assessments = []
        for unit in units:
            if unit.assessmentId is None:
                continue
            assessment = self.assessments_table.get_assessment_for_unit(unit.unitId)
            if assessment is not None:
                assessments.append(assessment)
        return assessments

    def get_lesson_unlock_state(self, user_id: UserId, lesson_id: LessonId) -> LessonUnlockStateModel:
        self.xp_ledger.ensure_user_exists(user_id)
        units = self.learning_units_table.get_units_for_lesson(lesson_id)
        assessments = self._assessments_for_units(units)
        passing_scores = {a.assessmentId: a.passingScore for a in assessments}

        attempts = self.quiz_attempts_table.get_attempts_for_user(user_id)
        read_records = self.read_records_table.get_read_records_for_user(user_id)
        completed_reads = {r.unitId for r in read_records if r.completed}

        states = compute_unlock_state(
            units,
            passed_assessment_ids(attempts, passing_scores),
            known_assessment_ids=set(passing_scores),
            completed_reads=completed_reads,
            ungated_policy=self.ungated_policy,
        )
        return LessonUnlockStateModel(
            lessonId=lesson_id,
            units=states,
            completedCount=sum(1 for s in states if s.completed),
            totalCount=len(states),
        )

    def _category_index_for(
        self,
        attempts: typing.Iterable[AttemptRecordModel],
    ) -> tuple[dict[AssessmentId, CategoryName], dict[AssessmentId, int]]:
        """
        Walks each attempted assessment to its unit to find its category.
        :return: (assessment id -> category, assessment id -> passing score)
        """
        units: list[LearningUnitModel] = []
        assessments: list[AssessmentModel] = []
        for assessment_id in sorted({a.assessmentId for a in attempts}):
            assessment = self.assessments_table.get_assessment(assessment_id)
            if assessment is None:
                _LOGGER.warning(f"Attempted assessment {assessment_id} no longer exists; it has no category")
                continue
            assessments.append(assessment)
            unit = self.learning_units_table.get_unit(assessment.unitId)
            if unit is not None:
                units.append(unit)

        passing_scores = {a.assessmentId: a.passingScore for a in assessments}
        return build_category_index(units, assessments), passing_scores

    def get_progress_snapshot(self, user_id: UserId) -> UserProgressSnapshotModel:
        """
        Builds the learner's snapshot from their attempts, reads and award ledger.
        """
        self.xp_ledger.ensure_user_exists(user_id)
        attempts = self.quiz_attempts_table.get_attempts_for_user(user_id)
        read_records = self.read_records_table.get_read_records_for_user(user_id)
        category_of, passing_scores = self._category_index_for(attempts)

        return aggregate(
            user_id,
            attempts,
            category_of,
            passing_scores=passing_scores,
            total_xp=self.xp_ledger.get_total_xp(user_id),
            read_records=read_records,
            level_step=self.xp_ledger.policy.level_step,
        )

    def get_class_analytics(
        self,
        requester_id: UserId,
        section: typing.Optional[str] = None,
    ) -> ClassAnalyticsModel:
        """
        Per-student averages and weakest categories for a class, plus top performers and
        students needing attention. Only admins may read it.

        :param section: Limit to one class section; every student when None.
        :raises NotFoundError: If the requester has no profile.
        :raises PermissionDeniedError: If the requester is not an admin.
        """
        requester = self.user_profile_table.get_profile(requester_id)
        if requester is None:
            raise NotFoundError(f"User {requester_id} not found")
        if requester.role != "admin":
            _LOGGER.warning(f"User {requester_id} with role {requester.role} requested class analytics")
            raise PermissionDeniedError("Class analytics are only available to admins")

        students = self.user_profile_table.get_student_profiles(section)
        attempts_by_student = {s.userId: self.quiz_attempts_table.get_attempts_for_user(s.userId) for s in students}
        category_of, _ = self._category_index_for(a for attempts in attempts_by_student.values() for a in attempts)

        summaries = [
            summarize_student(
                student.userId,
                attempts_by_student[student.userId],
                category_of,
                username=student.username,
                section=student.section,
            )
            for student in students
        ]
        top_performers, needs_attention = rank_students(summaries)
        return ClassAnalyticsModel(
            section=section,
            studentCount=len(summaries),
            students=summaries,
            topPerformers=top_performers,
            needsAttention=needs_attention,
        )

    def get_xp_status(self, user_id: UserId) -> XpStatusModel:
        return self.xp_ledger.get_xp_status(user_id)
