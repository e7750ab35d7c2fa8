import logging
import typing
from datetime import datetime, timezone

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from lesson_progression.models.progress_models import ReadRecordModel
from lesson_progression.utils.base_types import IsoTimestamp, UnitId, UserId
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ReadRecordsTable:
    """
    One read-completion record per (user, unit).

    Table Schema:
      - PK: userId (String)
      - SK: unitId (String)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_read_record(self, user_id: UserId, unit_id: UnitId) -> typing.Optional[ReadRecordModel]:
        """
        Retrieves a user's read record for a unit.

        :return: ReadRecordModel if found, else None.
        """
        try:
            response = self.table.get_item(Key={"userId": user_id, "unitId": unit_id})
        except ClientError as e:
            _LOGGER.error(f"Failed for user_id {user_id}, unit_id {unit_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read read record for unit {unit_id}") from e

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No read record for user_id: {user_id}, unit_id: {unit_id}")
            return None
        return ReadRecordModel.model_validate(item)

    def get_read_records_for_user(self, user_id: UserId) -> list[ReadRecordModel]:
        records: list[ReadRecordModel] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}
        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item in response.get("Items", []):
                    try:
                        records.append(ReadRecordModel.model_validate(item))
                    except ValidationError as ve:
                        _LOGGER.warning(f"Skipping invalid read record for user {user_id}: {item}. Error: {ve}")
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query read records for user {user_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read read records for user {user_id}") from e
        return records

    def upsert_read_record(self, user_id: UserId, unit_id: UnitId, completed: bool) -> ReadRecordModel:
        """
        Creates or updates the read record for (user, unit).
        The first completion timestamp is kept when a completed record is written again.

        :return: The record as stored after the update.
        """
        if completed:
            timestamp = IsoTimestamp(datetime.now(timezone.utc).isoformat())
            update_expression = "SET #completed = :completed, #completedAt = if_not_exists(#completedAt, :completedAt)"
            expression_attribute_values: dict[str, typing.Any] = {":completed": True, ":completedAt": timestamp}
        else:
            update_expression = "SET #completed = :completed REMOVE #completedAt"
            expression_attribute_values = {":completed": False}

        try:
            response = self.table.update_item(
                Key={"userId": user_id, "unitId": unit_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames={"#completed": "completed", "#completedAt": "completedAt"},
                ExpressionAttributeValues=expression_attribute_values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            _LOGGER.error(
                f"Error upserting read record for user {user_id}, unit {unit_id}: {e.response['Error']['Message']}",
                exc_info=True,
            )
            raise UpstreamUnavailableError(f"Could not save read record for unit {unit_id}") from e

        _LOGGER.info(f"Read record for user {user_id}, unit {unit_id} set to completed={completed}")
        return ReadRecordModel.model_validate(response["Attributes"])
