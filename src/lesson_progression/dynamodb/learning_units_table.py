import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from lesson_progression.models.content_models import LearningUnitModel
from lesson_progression.utils.base_types import LessonId, UnitId
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class LearningUnitsTable:
    """
    Units (topics) grouped by their parent lesson. Content is authored elsewhere;
    the progression engine only reads it, save_unit exists for seeding.

    Table Schema:
      - PK: lessonId (String)
      - SK: unitId (String)
      - GSI UnitIdIndex: PK unitId
    """

    GSI_UNIT_ID_INDEX_NAME = "UnitIdIndex"

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, items: list[dict[str, typing.Any]]) -> list[LearningUnitModel]:
        units = []
        for item in items:
            try:
                units.append(LearningUnitModel.model_validate(item))
            except ValidationError as e:
                _LOGGER.error(f"Validation error for unit item (unitId: {item.get('unitId')}): {e}", exc_info=True)
        return units

    def get_units_for_lesson(self, lesson_id: LessonId) -> list[LearningUnitModel]:
        """Retrieves a lesson's units ordered by ordinal."""
        items: list[dict[str, typing.Any]] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("lessonId").eq(lesson_id)}
        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query units for lesson {lesson_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read units for lesson {lesson_id}") from e

        units = self._parse_items(items)
        units.sort(key=lambda u: u.ordinal)
        _LOGGER.info(f"Fetched {len(units)} units for lesson {lesson_id}.")
        return units

    def get_unit(self, unit_id: UnitId) -> typing.Optional[LearningUnitModel]:
        try:
            response = self.table.query(
                IndexName=self.GSI_UNIT_ID_INDEX_NAME,
                KeyConditionExpression=Key("unitId").eq(unit_id),
            )
        except ClientError as e:
            _LOGGER.error(f"Failed to look up unit {unit_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read unit {unit_id}") from e

        units = self._parse_items(response.get("Items", []))
        if not units:
            _LOGGER.debug(f"No unit found for unit_id: {unit_id}")
            return None
        return units[0]

    def save_unit(self, unit: LearningUnitModel) -> LearningUnitModel:
        try:
            self.table.put_item(Item=unit.model_dump(exclude_none=True))
        except ClientError as e:
            _LOGGER.error(f"Error saving unit {unit.unitId}: {e.response['Error']['Message']}", exc_info=True)
            raise UpstreamUnavailableError(f"Could not save unit {unit.unitId}") from e
        return unit
