import typing

import pydantic

from lesson_progression.utils.base_types import IsoTimestamp, UserId

UserRole = typing.Literal["student", "admin"]


class UserProfileModel(pydantic.BaseModel):
    """
    Pydantic model representing a learner profile stored in DynamoDB.
    The progression engine uses it to tell known users from unknown ones, and students from admins.
    """

    userId: UserId = pydantic.Field(description="Partition Key")
    username: typing.Optional[str] = pydantic.Field(default=None, description="Display name")
    section: typing.Optional[str] = pydantic.Field(default=None, description="Class section the learner belongs to")
    role: UserRole = pydantic.Field(default="student", description="Admins can read class analytics")
    createdAt: typing.Optional[IsoTimestamp] = pydantic.Field(
        default=None, description="ISO8601 timestamp of when the profile was created"
    )
