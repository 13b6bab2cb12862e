"""AWS utility functions and client management."""
import os
import boto3
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from dbbsoft_deploy.settings import DeploySettings, get_settings

logger = logging.getLogger(__name__)

THROTTLING_CODES = {
    'Throttling',
    'ThrottlingException',
    'ThrottledException',
    'RequestLimitExceeded',
    'TooManyRequestsException',
    'RequestThrottled',
    'SlowDown',
}


class AWSClientManager:
    """Cache of AWS service clients configured from settings."""

    def __init__(self, settings: Optional[DeploySettings] = None):
        self.settings = settings or get_settings()
        self._clients: Dict[str, Any] = {}

        # Cache commonly used values
        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.endpoint_url
        self.mode = self.settings.deployment_mode

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Mode: {self.mode}")
        logger.info(f"  Region: {self.region}")
        logger.info(f"  Endpoint: {self.endpoint_url}")

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region
        }

        # Check for AWS profile in environment (for SSO)
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile and self.mode == 'aws-prod':
            session = boto3.Session(profile_name=aws_profile)
            client = session.client(service_name, region_name=self.region)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client using profile: {aws_profile}")
            return client

        if self.settings.aws_access_key_id:
            client_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            client_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key

        # Local/mock modes talk to a moto server
        if self.settings.uses_mock_endpoint:
            client_kwargs['endpoint_url'] = self.endpoint_url
            client_kwargs.setdefault('aws_access_key_id', 'mock')
            client_kwargs.setdefault('aws_secret_access_key', 'mock')

        try:
            client = boto3.client(service_name, **client_kwargs)
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise
        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    def account_id(self) -> str:
        """AWS account ID from settings, or from STS."""
        if self.settings.aws_account_id:
            return self.settings.aws_account_id
        return self.get_client('sts').get_caller_identity()['Account']


def error_code(error: Exception) -> str:
    """Error code of a botocore ClientError, or '' for anything else."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '')
    return ''


def error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message', str(error))
    return str(error)


def is_throttling(error: Exception) -> bool:
    return error_code(error) in THROTTLING_CODES
