import os
import typing

from lesson_progression.models.xp_models import XpPolicy


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def get_aws_region() -> str:
    return _get_resource_by_env_var("AWS_REGION")


def get_quiz_attempts_table_name() -> str:
    return _get_resource_by_env_var("QUIZ_ATTEMPTS_TABLE_NAME")


def get_read_records_table_name() -> str:
    return _get_resource_by_env_var("READ_RECORDS_TABLE_NAME")


def get_xp_awards_table_name() -> str:
    return _get_resource_by_env_var("XP_AWARDS_TABLE_NAME")


def get_learning_units_table_name() -> str:
    return _get_resource_by_env_var("LEARNING_UNITS_TABLE_NAME")


def get_assessments_table_name() -> str:
    return _get_resource_by_env_var("ASSESSMENTS_TABLE_NAME")


def get_user_profile_table_name() -> str:
    return _get_resource_by_env_var("USER_PROFILE_TABLE_NAME")


# env var -> XpPolicy field
_XP_POLICY_ENV_VARS: dict[str, str] = {
    "XP_LEVEL_STEP": "level_step",
    "XP_READ_REWARD": "read_xp",
    "XP_READ_REWARD_PER_ORDINAL": "read_xp_per_ordinal",
    "XP_QUIZ_BASE": "quiz_xp_base",
    "XP_QUIZ_PER_ORDINAL": "quiz_xp_per_ordinal",
    "XP_QUIZ_MULTIPLIER": "quiz_xp_multiplier",
    "XP_QUIZ_SCORE_OFFSET": "quiz_score_offset",
    "XP_QUIZ_MAX": "quiz_xp_max",
    "READ_COMPLETION_THRESHOLD": "read_completion_threshold",
}


def get_xp_policy() -> XpPolicy:
    """
    Builds the XP policy from defaults, overridden by any XP_* env vars that are set.
    Raises pydantic.ValidationError if an override is not a valid value.
    """
    overrides: dict[str, typing.Any] = {}
    for env_var, field_name in _XP_POLICY_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            overrides[field_name] = value
    return XpPolicy.model_validate(overrides)
