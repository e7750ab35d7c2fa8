import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from lesson_progression.models.content_models import AssessmentModel
from lesson_progression.utils.base_types import AssessmentId, UnitId
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class AssessmentsTable:
    """
    Quizzes, one per owning unit.

    Table Schema:
      - PK: unitId (String)
      - GSI AssessmentIdIndex: PK assessmentId
    """

    GSI_ASSESSMENT_ID_INDEX_NAME = "AssessmentIdIndex"

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_assessment_for_unit(self, unit_id: UnitId) -> typing.Optional[AssessmentModel]:
        try:
            response = self.table.get_item(Key={"unitId": unit_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get assessment for unit {unit_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read assessment for unit {unit_id}") from e

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No assessment for unit_id: {unit_id}")
            return None
        return AssessmentModel.model_validate(item)

    def get_assessment(self, assessment_id: AssessmentId) -> typing.Optional[AssessmentModel]:
        try:
            response = self.table.query(
                IndexName=self.GSI_ASSESSMENT_ID_INDEX_NAME,
                KeyConditionExpression=Key("assessmentId").eq(assessment_id),
            )
        except ClientError as e:
            _LOGGER.error(f"Failed to look up assessment {assessment_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read assessment {assessment_id}") from e

        items = response.get("Items", [])
        if not items:
            return None
        return AssessmentModel.model_validate(items[0])

    def save_assessment(self, assessment: AssessmentModel) -> AssessmentModel:
        try:
            self.table.put_item(Item=assessment.model_dump(exclude_none=True))
        except ClientError as e:
            _LOGGER.error(
                f"Error saving assessment {assessment.assessmentId}: {e.response['Error']['Message']}", exc_info=True
            )
            raise UpstreamUnavailableError(f"Could not save assessment {assessment.assessmentId}") from e
        return assessment
