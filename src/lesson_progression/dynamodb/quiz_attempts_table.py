import logging
import typing
import uuid
from datetime import datetime, timezone

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from lesson_progression.models.progress_models import AttemptRecordModel
from lesson_progression.utils.base_types import (
    AssessmentId,
    AttemptId,
    IsoTimestamp,
    QuestionId,
    UserId,
)
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class QuizAttemptsTable:
    """
    Append-only log of quiz attempts.

    Table Schema:
      - PK: userId (String)
      - SK: attemptId (String - "submittedAt#assessmentId#uuid", sorts chronologically)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def insert_attempt(
        self,
        user_id: UserId,
        assessment_id: AssessmentId,
        score: int,
        answers: dict[QuestionId, str],
        timestamp_iso: typing.Optional[IsoTimestamp] = None,
    ) -> AttemptRecordModel:
        """
        Records one scored submission. Attempts are never overwritten.

        :raises ValidationError: If the score is outside 0-100.
        :raises UpstreamUnavailableError: If DynamoDB fails.
        """
        if timestamp_iso is None:
            timestamp_iso = IsoTimestamp(datetime.now(timezone.utc).isoformat())

        attempt = AttemptRecordModel(
            userId=user_id,
            attemptId=AttemptId(f"{timestamp_iso}#{assessment_id}#{uuid.uuid4()}"),
            assessmentId=assessment_id,
            score=score,
            answers=answers,
            submittedAt=timestamp_iso,
        )

        try:
            self.table.put_item(
                Item=attempt.model_dump(exclude_none=True),
                ConditionExpression="attribute_not_exists(attemptId)",
            )
        except ClientError as e:
            _LOGGER.error(
                f"Error saving attempt for user {user_id}, assessment {assessment_id}: "
                f"{e.response['Error']['Message']}",
                exc_info=True,
            )
            raise UpstreamUnavailableError(f"Could not save attempt for assessment {assessment_id}") from e

        _LOGGER.info(f"Recorded attempt {attempt.attemptId} for user {user_id} with score {score}")
        return attempt

    def get_attempts_for_user(self, user_id: UserId) -> list[AttemptRecordModel]:
        """Retrieves a user's whole attempt log, oldest first."""
        _LOGGER.debug(f"Fetching attempts for user_id: {user_id}")
        attempts: list[AttemptRecordModel] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}

        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item in response.get("Items", []):
                    try:
                        attempts.append(AttemptRecordModel.model_validate(item))
                    except ValidationError as ve:
                        _LOGGER.warning(f"Skipping invalid attempt item for user {user_id}: {item}. Error: {ve}")
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query attempts for user {user_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read attempts for user {user_id}") from e

        _LOGGER.info(f"Fetched {len(attempts)} attempts for user {user_id}.")
        return attempts
