import typing
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from lesson_progression.dynamodb.assessments_table import AssessmentsTable
from lesson_progression.dynamodb.learning_units_table import LearningUnitsTable
from lesson_progression.dynamodb.quiz_attempts_table import QuizAttemptsTable
from lesson_progression.dynamodb.read_records_table import ReadRecordsTable
from lesson_progression.dynamodb.user_profile_table import UserProfileTable
from lesson_progression.dynamodb.xp_awards_table import XpAwardsTable
from lesson_progression.models.content_models import AssessmentModel, LearningUnitModel, QuestionModel
from lesson_progression.progression.progression_service import ProgressionService
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

REGION = "us-west-1"
USER = UserId("learner-1")
CLASSMATE = UserId("learner-2")
ADMIN = UserId("instructor-1")
LESSON = LessonId("ict-basics")
TOURISM_LESSON = LessonId("front-office")

# name -> (key schema, gsi key attribute or None)
TABLES: dict[str, tuple[list[tuple[str, str]], typing.Optional[tuple[str, str]]]] = {
    "QuizAttempts": ([("userId", "HASH"), ("attemptId", "RANGE")], None),
    "ReadRecords": ([("userId", "HASH"), ("unitId", "RANGE")], None),
    "XpAwards": ([("userId", "HASH"), ("awardKey", "RANGE")], None),
    "UserProfile": ([("userId", "HASH")], None),
    "LearningUnits": ([("lessonId", "HASH"), ("unitId", "RANGE")], ("UnitIdIndex", "unitId")),
    "Assessments": ([("unitId", "HASH")], ("AssessmentIdIndex", "assessmentId")),
}


def _create_table(dynamodb, name: str) -> None:
    key_schema, gsi = TABLES[name]
    attribute_names = {attr for attr, _ in key_schema}
    kwargs: dict[str, typing.Any] = {}
    if gsi is not None:
        index_name, index_key = gsi
        attribute_names.add(index_key)
        kwargs["GlobalSecondaryIndexes"] = [
            {
                "IndexName": index_name,
                "KeySchema": [{"AttributeName": index_key, "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
        ]
    table = dynamodb.create_table(
        TableName=name,
        KeySchema=[{"AttributeName": attr, "KeyType": key_type} for attr, key_type in key_schema],
        AttributeDefinitions=[{"AttributeName": attr, "AttributeType": "S"} for attr in sorted(attribute_names)],
        BillingMode="PAY_PER_REQUEST",
        **kwargs,
    )
    table.wait_until_exists()


def _questions(count: int) -> list[QuestionModel]:
    return [QuestionModel(questionId=QuestionId(f"q{i}"), correctAnswer="a") for i in range(count)]


def _answers(correct: int, total: int) -> dict[QuestionId, str]:
    return {QuestionId(f"q{i}"): ("a" if i < correct else "b") for i in range(total)}


@pytest.fixture
def progression_service(aws_credentials) -> typing.Iterator[ProgressionService]:
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        for name in TABLES:
            _create_table(dynamodb, name)

        units_table = LearningUnitsTable("LearningUnits")
        assessments_table = AssessmentsTable("Assessments")
        ict = CategoryName("ICT")
        units_table.save_unit(LearningUnitModel(lessonId=LESSON, unitId=UnitId("u0"), ordinal=0, category=ict))
        units_table.save_unit(
            LearningUnitModel(
                lessonId=LESSON, unitId=UnitId("u1"), ordinal=1, assessmentId=AssessmentId("A1"), category=ict
            )
        )
        units_table.save_unit(
            LearningUnitModel(
                lessonId=LESSON, unitId=UnitId("u2"), ordinal=2, assessmentId=AssessmentId("A2"), category=ict
            )
        )
        units_table.save_unit(
            LearningUnitModel(
                lessonId=TOURISM_LESSON,
                unitId=UnitId("t0"),
                ordinal=0,
                assessmentId=AssessmentId("T1"),
                category=CategoryName("Tourism"),
            )
        )
        assessments_table.save_assessment(
            AssessmentModel(unitId=UnitId("u1"), assessmentId=AssessmentId("A1"), questions=_questions(4))
        )
        assessments_table.save_assessment(
            AssessmentModel(
                unitId=UnitId("u2"), assessmentId=AssessmentId("A2"), questions=_questions(5), passingScore=80
            )
        )
        assessments_table.save_assessment(
            AssessmentModel(unitId=UnitId("t0"), assessmentId=AssessmentId("T1"), questions=_questions(5))
        )

        profile_table = UserProfileTable("UserProfile")
        profile_table.create_profile(USER, username="Ana", section="ICT-11A")
        profile_table.create_profile(CLASSMATE, username="Ben", section="ICT-11B")
        profile_table.create_profile(ADMIN, username="Ms. Cruz", role="admin")

        yield ProgressionService(
            quiz_attempts_table=QuizAttemptsTable("QuizAttempts"),
            read_records_table=ReadRecordsTable("ReadRecords"),
            learning_units_table=units_table,
            assessments_table=assessments_table,
            user_profile_table=profile_table,
            xp_ledger=XpLedger(XpAwardsTable("XpAwards"), profile_table),
        )


def test_submit_passing_quiz_records_attempt_and_awards_xp(progression_service: ProgressionService):
    result = progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(3, 4))

    assert result.attempt.score == 75
    assert result.passed is True
    assert result.passingScore == 70
    assert result.xp.xpAwarded == 150
    assert result.xp.totalXp == 150

    attempts = progression_service.quiz_attempts_table.get_attempts_for_user(USER)
    assert [a.assessmentId for a in attempts] == ["A1"]


def test_failed_quiz_is_recorded_without_xp(progression_service: ProgressionService):
    result = progression_service.submit_quiz_attempt(USER, AssessmentId("A2"), _answers(3, 5))

    assert result.attempt.score == 60
    assert result.passed is False
    assert result.passingScore == 80
    assert result.xp.xpAwarded == 0
    assert len(progression_service.quiz_attempts_table.get_attempts_for_user(USER)) == 1


def test_retaking_a_passed_quiz_awards_nothing_more(progression_service: ProgressionService):
    progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(3, 4))
    retake = progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(4, 4))

    assert retake.passed is True
    assert retake.xp.xpAwarded == 0
    assert retake.xp.totalXp == 150
    assert len(progression_service.quiz_attempts_table.get_attempts_for_user(USER)) == 2


def test_submit_for_unknown_assessment_raises(progression_service: ProgressionService):
    with pytest.raises(NotFoundError):
        progression_service.submit_quiz_attempt(USER, AssessmentId("missing"), {})


def test_submit_for_unknown_user_writes_nothing(progression_service: ProgressionService):
    stranger = UserId("stranger")

    with pytest.raises(NotFoundError):
        progression_service.submit_quiz_attempt(stranger, AssessmentId("A1"), _answers(4, 4))

    assert progression_service.quiz_attempts_table.get_attempts_for_user(stranger) == []


def test_read_progress_below_threshold_is_not_completion(progression_service: ProgressionService):
    result = progression_service.record_read_progress(USER, LESSON, UnitId("u0"), 0.5)

    assert result.completed is False
    assert result.xp is None
    assert progression_service.read_records_table.get_read_record(USER, UnitId("u0")) is None


def test_read_completion_awards_once(progression_service: ProgressionService):
    first = progression_service.record_read_progress(USER, LESSON, UnitId("u0"), 0.95)
    second = progression_service.record_read_progress(USER, LESSON, UnitId("u0"), 1.0)

    assert first.completed is True
    assert first.xp is not None and first.xp.xpAwarded == 50
    assert second.xp is not None and second.xp.xpAwarded == 0
    assert second.xp.totalXp == 50
    assert first.readRecord is not None and second.readRecord is not None
    assert second.readRecord.completedAt == first.readRecord.completedAt


def test_read_progress_for_unit_outside_lesson_raises(progression_service: ProgressionService):
    with pytest.raises(NotFoundError):
        progression_service.record_read_progress(USER, TOURISM_LESSON, UnitId("u0"), 1.0)


def test_read_progress_out_of_range_raises(progression_service: ProgressionService):
    with pytest.raises(InvalidArgumentError):
        progression_service.record_read_progress(USER, LESSON, UnitId("u0"), 1.5)


def test_unlock_state_follows_passed_assessments(progression_service: ProgressionService):
    before = progression_service.get_lesson_unlock_state(USER, LESSON)
    assert [(u.unitId, u.locked) for u in before.units] == [("u0", False), ("u1", False), ("u2", True)]
    assert before.completedCount == 0
    assert before.totalCount == 3

    progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(4, 4))
    progression_service.record_read_progress(USER, LESSON, UnitId("u0"), 1.0)

    after = progression_service.get_lesson_unlock_state(USER, LESSON)
    assert [(u.unitId, u.locked, u.completed) for u in after.units] == [
        ("u0", False, True),
        ("u1", False, True),
        ("u2", False, False),
    ]
    assert after.completedCount == 2


def test_progress_snapshot_groups_by_lesson_category(progression_service: ProgressionService):
    progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(4, 4))
    progression_service.submit_quiz_attempt(USER, AssessmentId("A2"), _answers(3, 5))
    progression_service.submit_quiz_attempt(USER, AssessmentId("T1"), _answers(2, 5))

    snapshot = progression_service.get_progress_snapshot(USER)

    categories = {c.name: c for c in snapshot.categories}
    assert categories["ICT"].avgScore == 80
    assert categories["ICT"].passRate == 50
    assert categories["Tourism"].avgScore == 40
    assert [c.name for c in snapshot.strengths] == ["ICT"]
    assert [c.name for c in snapshot.weaknesses] == ["Tourism"]
    assert snapshot.quizzesTaken == 3
    assert snapshot.totalXp == 200


def test_xp_status_for_unknown_user_raises(progression_service: ProgressionService):
    with pytest.raises(NotFoundError):
        progression_service.get_xp_status(UserId("stranger"))


def test_unlock_state_for_unknown_user_raises(progression_service: ProgressionService):
    with pytest.raises(NotFoundError):
        progression_service.get_lesson_unlock_state(UserId("stranger"), LESSON)


def test_quiz_award_lost_to_concurrent_request_still_returns_result(progression_service: ProgressionService):
    awards_table = progression_service.xp_ledger.xp_awards_table
    real_save = awards_table.save_award

    def save_after_other_request(award) -> bool:
        # another request for the same unit lands its award first
        real_save(award)
        return False

    with patch.object(awards_table, "save_award", side_effect=save_after_other_request):
        result = progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(3, 4))

    assert result.passed is True
    assert result.xp.xpAwarded == 0
    assert result.xp.totalXp == 150
    assert len(progression_service.quiz_attempts_table.get_attempts_for_user(USER)) == 1


def test_class_analytics_ranks_students(progression_service: ProgressionService):
    progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(3, 4))
    progression_service.submit_quiz_attempt(CLASSMATE, AssessmentId("T1"), _answers(2, 5))

    analytics = progression_service.get_class_analytics(ADMIN)

    assert analytics.studentCount == 2
    assert [(s.userId, s.username, s.avgScore) for s in analytics.students] == [
        ("learner-1", "Ana", 75),
        ("learner-2", "Ben", 40),
    ]
    assert analytics.students[1].weakestCategory.name == "Tourism"
    assert [s.userId for s in analytics.topPerformers] == ["learner-1", "learner-2"]
    assert [s.userId for s in analytics.needsAttention] == ["learner-2"]


def test_class_analytics_filters_by_section(progression_service: ProgressionService):
    progression_service.submit_quiz_attempt(USER, AssessmentId("A1"), _answers(3, 4))

    analytics = progression_service.get_class_analytics(ADMIN, section="ICT-11A")

    assert analytics.section == "ICT-11A"
    assert [s.userId for s in analytics.students] == ["learner-1"]
    assert analytics.students[0].section == "ICT-11A"


def test_class_analytics_lists_students_without_attempts(progression_service: ProgressionService):
    analytics = progression_service.get_class_analytics(ADMIN)

    assert analytics.studentCount == 2
    assert all(s.quizCount == 0 for s in analytics.students)
    assert analytics.topPerformers == []
    assert analytics.needsAttention == []


def test_class_analytics_requires_admin(progression_service: ProgressionService):
    with pytest.raises(PermissionDeniedError):
        progression_service.get_class_analytics(USER)

    with pytest.raises(NotFoundError):
        progression_service.get_class_analytics(UserId("stranger"))
