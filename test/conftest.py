"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    Session scoped and autouse: the application reads these names at runtime and
    they do not change between tests.
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = "us-west-1"

    # DynamoDB Table Names
    os.environ["QUIZ_ATTEMPTS_TABLE_NAME"] = "test-quiz-attempts-table"
    os.environ["READ_RECORDS_TABLE_NAME"] = "test-read-records-table"
    os.environ["XP_AWARDS_TABLE_NAME"] = "test-xp-awards-table"
    os.environ["LEARNING_UNITS_TABLE_NAME"] = "test-learning-units-table"
    os.environ["ASSESSMENTS_TABLE_NAME"] = "test-assessments-table"
    os.environ["USER_PROFILE_TABLE_NAME"] = "test-user-profile-table"

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto (AWS mocking library).

    Used by DynamoDB table tests that wrap their fixtures in moto's mock_aws context.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-west-1"
    yield
    # Clean up after each test
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]
