import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from lesson_progression.models.xp_models import AwardKind, XpAwardModel
from lesson_progression.utils.base_types import UnitId, UserId
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class XpAwardsTable:
    """
    Data Abstraction Layer for the XP award ledger.

    Every XP grant is one write-once item, so the ledger both answers "was this event
    already rewarded?" and is the source of truth for a learner's total XP.

    Table Schema:
      - PK: userId (String)
      - SK: awardKey (String - "unitId#kind", e.g. "topic-3#quiz-pass")
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)
        _LOGGER.info(f"XpAwardsTable initialized for table: {table_name}")

    @staticmethod
    def make_award_key(unit_id: UnitId, kind: AwardKind) -> str:
        return f"{unit_id}#{kind}"

    def get_award(self, user_id: UserId, unit_id: UnitId, kind: AwardKind) -> typing.Optional[XpAwardModel]:
        """
        Retrieves the award for one (user, unit, kind) event.

        :return: XpAwardModel if the event was already rewarded, else None.
        :raises UpstreamUnavailableError: If DynamoDB fails.
        """
        award_key = self.make_award_key(unit_id, kind)
        try:
            response = self.table.get_item(Key={"userId": user_id, "awardKey": award_key}, ConsistentRead=True)
        except ClientError as e:
            _LOGGER.error(f"Failed to get award {award_key} for user {user_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read award {award_key}") from e

        item = response.get("Item")
        if not item:
            return None
        return XpAwardModel.model_validate(item)

    def get_awards_for_user(self, user_id: UserId) -> list[XpAwardModel]:
        """Retrieves every award granted to a user, following pagination."""
        _LOGGER.debug(f"Fetching all awards for user_id: {user_id}")
        awards: list[XpAwardModel] = []
        query_kwargs: dict[str, typing.Any] = {
            "KeyConditionExpression": Key("userId").eq(user_id),
            "ConsistentRead": True,
        }
        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item in response.get("Items", []):
                    try:
                        awards.append(XpAwardModel.model_validate(item))
                    except ValidationError as ve:
                        _LOGGER.warning(f"Skipping invalid award item for user {user_id}: {item}. Error: {ve}")
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query awards for user {user_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read awards for user {user_id}") from e

        return awards

    def save_award(self, award: XpAwardModel) -> bool:
        """
        Writes an award only if none exists for the same key.

        :return: True if written, False if an award for this key already exists.
        :raises UpstreamUnavailableError: For any other DynamoDB failure.
        """
        try:
            self.table.put_item(
                Item=award.model_dump(exclude_none=True),
                ConditionExpression="attribute_not_exists(userId) AND attribute_not_exists(awardKey)",
            )
            _LOGGER.info(f"Saved {award.amount} XP award {award.awardKey} for user {award.userId}")
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"Award {award.awardKey} already exists for user {award.userId}. Skipping.")
                return False
            _LOGGER.error(
                f"Error saving award {award.awardKey} for user {award.userId}: {e.response['Error']['Message']}"
            )
            raise UpstreamUnavailableError(f"Could not save award {award.awardKey}") from e
