"""AWS fixtures for tests."""
import boto3
import pytest
from moto import mock_aws

from dbbsoft_deploy.aws.utils import AWSClientManager
from dbbsoft_deploy.settings import DeploySettings
from tests.consts import TEST_ACCOUNT_ID, TEST_BUNDLE_BUCKET, TEST_REGION


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def deploy_settings(aws_credentials) -> DeploySettings:
    return DeploySettings(
        deployment_mode="aws-prod",
        aws_region=TEST_REGION,
        aws_account_id=TEST_ACCOUNT_ID,
        artifact_bucket=TEST_BUNDLE_BUCKET,
        poll_interval=0.01,
        api_retry_delay=0,
    )


@pytest.fixture
def mocked_aws(aws_credentials):
    """Run the test against moto's in-memory AWS."""
    with mock_aws():
        yield


@pytest.fixture
def aws_clients(mocked_aws, deploy_settings) -> AWSClientManager:
    return AWSClientManager(deploy_settings)


@pytest.fixture
def ec2_client(mocked_aws):
    return boto3.client("ec2", region_name=TEST_REGION)
