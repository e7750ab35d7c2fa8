import logging
import typing
from datetime import datetime, timezone

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from lesson_progression.models.user_profile_models import UserProfileModel, UserRole
from lesson_progression.utils.base_types import IsoTimestamp, UserId
from lesson_progression.utils.errors import UpstreamUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class UserProfileTable:
    """
    Data Abstraction Layer for interacting with the UserProfile DynamoDB table.
    Used to tell registered learners apart from unknown user ids.

    Table Schema:
      - PK: userId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_profile(self, user_id: UserId) -> typing.Optional[UserProfileModel]:
        """
        Retrieves a user's profile from DynamoDB.

        :param user_id: The ID of the user.
        :return: UserProfileModel instance if found, else None.
        """
        _LOGGER.debug(f"Fetching profile for user_id: {user_id}")
        try:
            response = self.table.get_item(Key={"userId": user_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get profile for user_id {user_id}: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError(f"Could not read profile for user {user_id}") from e

        item_data = response.get("Item")
        if not item_data:
            _LOGGER.debug(f"No profile found for user_id: {user_id}")
            return None
        try:
            return UserProfileModel.model_validate(item_data)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate profile data for user_id {user_id}: {ve}", exc_info=True)
            return None

    def user_exists(self, user_id: UserId) -> bool:
        return self.get_profile(user_id) is not None

    def create_profile(
        self,
        user_id: UserId,
        username: typing.Optional[str] = None,
        section: typing.Optional[str] = None,
        role: UserRole = "student",
    ) -> UserProfileModel:
        """
        Creates a profile, stamping createdAt. Existing profiles are overwritten.
        """
        profile = UserProfileModel(
            userId=user_id,
            username=username,
            section=section,
            role=role,
            createdAt=IsoTimestamp(datetime.now(timezone.utc).isoformat()),
        )
        try:
            self.table.put_item(Item=profile.model_dump(exclude_none=True))
        except ClientError as e:
            _LOGGER.error(
                f"Error creating profile for user_id {user_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise UpstreamUnavailableError(f"Could not save profile for user {user_id}") from e
        _LOGGER.info(f"Created profile for user_id: {user_id}")
        return profile

    def get_student_profiles(self, section: typing.Optional[str] = None) -> list[UserProfileModel]:
        """
        Scans for every student profile, optionally limited to one class section.
        Profiles stored before roles existed count as students.

        :return: Profiles ordered by userId.
        """
        scan_kwargs: dict[str, typing.Any] = {}
        if section is not None:
            scan_kwargs["FilterExpression"] = Attr("section").eq(section)

        profiles: list[UserProfileModel] = []
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                for item in response.get("Items", []):
                    try:
                        profile = UserProfileModel.model_validate(item)
                    except ValidationError as ve:
                        _LOGGER.warning(f"Skipping invalid profile item {item.get('userId')}: {ve}")
                        continue
                    if profile.role == "student":
                        profiles.append(profile)
                if "LastEvaluatedKey" not in response:
                    break
                scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to scan student profiles: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError("Could not read student profiles") from e

        profiles.sort(key=lambda p: p.userId)
        _LOGGER.info(f"Fetched {len(profiles)} student profiles (section={section}).")
        return profiles
