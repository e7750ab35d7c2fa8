import logging
import typing

from pydantic import ValidationError

from lesson_progression.dynamodb.assessments_table import AssessmentsTable
from lesson_progression.dynamodb.learning_units_table import LearningUnitsTable
from lesson_progression.dynamodb.quiz_attempts_table import QuizAttemptsTable
from lesson_progression.dynamodb.read_records_table import ReadRecordsTable
from lesson_progression.dynamodb.user_profile_table import UserProfileTable
from lesson_progression.dynamodb.xp_awards_table import XpAwardsTable
from lesson_progression.models.progress_models import QuizSubmissionInputModel, ReadProgressInputModel
from lesson_progression.progression.progression_service import ProgressionService
from lesson_progression.progression.xp_ledger import XpLedger
from lesson_progression.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_event_body,
    get_method,
    get_path,
    get_path_parts,
    get_query_string_parameters,
    get_user_id_from_event,
)
from lesson_progression.utils.aws_env_vars import (
    get_assessments_table_name,
    get_learning_units_table_name,
    get_quiz_attempts_table_name,
    get_read_records_table_name,
    get_user_profile_table_name,
    get_xp_awards_table_name,
    get_xp_policy,
)
from lesson_progression.utils.base_types import AssessmentId, LessonId, UnitId, UserId
from lesson_progression.utils.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamUnavailableError,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ProgressionApiHandler:
    def __init__(self, progression_service: ProgressionService):
        self.progression_service = progression_service

    def _handle_get_xp(self, user_id: UserId) -> dict:
        status = self.progression_service.get_xp_status(user_id)
        return format_lambda_response(200, status.model_dump(exclude_none=True))

    def _handle_get_summary(self, user_id: UserId) -> dict:
        snapshot = self.progression_service.get_progress_snapshot(user_id)
        return format_lambda_response(200, snapshot.model_dump(exclude_none=True))

    def _handle_get_class_analytics(self, event: dict, user_id: UserId) -> dict:
        section = get_query_string_parameters(event).get("section")
        analytics = self.progression_service.get_class_analytics(user_id, section)
        return format_lambda_response(200, analytics.model_dump(exclude_none=True))

    def _handle_get_unlock_state(self, user_id: UserId, lesson_id: LessonId) -> dict:
        unlock_state = self.progression_service.get_lesson_unlock_state(user_id, lesson_id)
        return format_lambda_response(200, unlock_state.model_dump(exclude_none=True))

    def _handle_post_attempt(self, event: dict, user_id: UserId, assessment_id: AssessmentId) -> dict:
        if not event.get("body"):
            _LOGGER.error("Request body is missing for quiz submission.")
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        submission = QuizSubmissionInputModel.model_validate_json(get_event_body(event))
        result = self.progression_service.submit_quiz_attempt(user_id, assessment_id, submission.answers)
        return format_lambda_response(201, result.model_dump(exclude_none=True))

    def _handle_put_read(self, event: dict, user_id: UserId, lesson_id: LessonId, unit_id: UnitId) -> dict:
        if not event.get("body"):
            _LOGGER.error("Request body is missing for read progress.")
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        read_input = ReadProgressInputModel.model_validate_json(get_event_body(event))
        result = self.progression_service.record_read_progress(
            user_id, lesson_id, unit_id, read_input.scrollProgress
        )
        return format_lambda_response(200, result.model_dump(exclude_none=True))

    def _route(self, event: dict, user_id: UserId) -> dict:
        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = get_path_parts(event)

        if http_method == "GET" and path == "/progress/xp":
            return self._handle_get_xp(user_id)
        elif http_method == "GET" and path == "/progress/summary":
            return self._handle_get_summary(user_id)
        elif http_method == "GET" and path == "/analytics/class":
            return self._handle_get_class_analytics(event, user_id)
        elif (
            http_method == "GET"
            and len(path_parts) == 3
            and path_parts[0] == "lessons"
            and path_parts[2] == "unlock-state"
        ):
            # Path: /lessons/{lessonId}/unlock-state
            return self._handle_get_unlock_state(user_id, LessonId(path_parts[1]))
        elif (
            http_method == "POST"
            and len(path_parts) == 3
            and path_parts[0] == "assessments"
            and path_parts[2] == "attempts"
        ):
            # Path: /assessments/{assessmentId}/attempts
            return self._handle_post_attempt(event, user_id, AssessmentId(path_parts[1]))
        elif (
            http_method == "PUT"
            and len(path_parts) == 5
            and path_parts[0] == "lessons"
            and path_parts[2] == "units"
            and path_parts[4] == "read"
        ):
            # Path: /lessons/{lessonId}/units/{unitId}/read
            return self._handle_put_read(event, user_id, LessonId(path_parts[1]), UnitId(path_parts[3]))

        _LOGGER.warning(f"Unsupported path or method for Progression API: {http_method} {path}")
        return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        _LOGGER.info(f"ProgressionApiHandler: {get_method(event)} {get_path(event)} for user: {user_id}")

        try:
            return self._route(event, user_id)
        except ValidationError as e:
            _LOGGER.error(f"Request body validation error: {e.errors()}")
            details = e.errors(include_url=False, include_context=False, include_input=False)
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=details, event=event)
        except InvalidArgumentError as e:
            _LOGGER.warning(f"Invalid argument for user {user_id}: {e.message}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, e.message, event=event)
        except NotFoundError as e:
            _LOGGER.warning(f"Not found for user {user_id}: {e.message}")
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, e.message, event=event)
        except PermissionDeniedError as e:
            _LOGGER.warning(f"Permission denied for user {user_id}: {e.message}")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, e.message, event=event)
        except ConflictError as e:
            _LOGGER.warning(f"Conflict for user {user_id}: {e.message}")
            return create_error_response(ErrorCode.CONFLICT, event=event)
        except UpstreamUnavailableError as e:
            _LOGGER.error(f"Data store unavailable for user {user_id}: {e.message}", exc_info=True)
            return create_error_response(ErrorCode.SERVICE_UNAVAILABLE, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in ProgressionApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def progression_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global progression_lambda_handler received event.")

    try:
        user_profile_table = UserProfileTable(get_user_profile_table_name())
        xp_ledger = XpLedger(
            xp_awards_table=XpAwardsTable(get_xp_awards_table_name()),
            user_profile_table=user_profile_table,
            policy=get_xp_policy(),
        )
        api_handler = ProgressionApiHandler(
            progression_service=ProgressionService(
                quiz_attempts_table=QuizAttemptsTable(get_quiz_attempts_table_name()),
                read_records_table=ReadRecordsTable(get_read_records_table_name()),
                learning_units_table=LearningUnitsTable(get_learning_units_table_name()),
                assessments_table=AssessmentsTable(get_assessments_table_name()),
                user_profile_table=user_profile_table,
                xp_ledger=xp_ledger,
            )
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in progression_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during ProgressionApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
