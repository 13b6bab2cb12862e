# src/dbbsoft_deploy/settings.py
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RetentionPolicy = Literal["retain", "destroy"]


class DeploySettings(BaseSettings):
    """
    Single source of truth for deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from dbbsoft_deploy.settings import get_settings
        settings = get_settings()
        repo = settings.repository_name
    """

    # Deployment Mode
    deployment_mode: str = Field(
        default="aws-prod",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (resolved by STS if not provided)"
    )

    # Version source
    manifest_path: Path = Field(
        default=Path("app/package.json"),
        description="Project manifest holding the semantic version"
    )

    # Elastic Beanstalk
    application_name: str = Field(default="DbbSoft")
    environment_name: str = Field(default="DbbSoftEnv")
    solution_stack: str = Field(
        default="64bit Amazon Linux 2023 v4.8.0 running Docker",
        description="Elastic Beanstalk platform for single-container Docker"
    )
    instance_type: str = Field(default="t3.micro")
    environment_type: Literal["SingleInstance", "LoadBalanced"] = Field(default="SingleInstance")

    # Networking
    security_group_name: str = Field(default="DbbSoftWebSg")
    vpc: str = Field(
        default="default",
        description="VPC id, or 'default' to look up the account's default VPC"
    )
    public_port: int = Field(default=80, ge=1, le=65535)
    container_port: int = Field(default=8080, ge=1, le=65535)
    ingress_cidr: str = Field(default="0.0.0.0/0")

    # ECR Configuration
    repository_name: str = Field(default="dbbsoftt-repo")
    repository_retention: RetentionPolicy = Field(
        default="retain",
        description="What happens to the image repository and its images on destroy"
    )
    image_build_context: Path = Field(default=Path("."))
    image_dockerfile: Optional[Path] = Field(default=Path("app/Dockerfile"))
    image_platform: str = Field(default="linux/amd64")
    image_env_var: str = Field(
        default="IMAGE_URI",
        description="Environment variable the compute environment injects with the image URI"
    )

    # IAM Configuration
    role_name: str = Field(default="DbbSoftEBInstanceRole")

    # Source bundles
    artifact_bucket: Optional[str] = Field(
        default=None,
        description="S3 bucket for source bundles (derived from account and region if unset)"
    )

    # Convergence
    convergence_timeout: float = Field(default=900.0, gt=0)
    poll_interval: float = Field(default=15.0, gt=0)

    # Provisioning API retries (throttling only)
    api_max_attempts: int = Field(default=4, ge=1)
    api_retry_delay: float = Field(default=1.0, ge=0)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator('deployment_mode', mode='before')
    @classmethod
    def normalize_deployment_mode(cls, v):
        """Normalize legacy deployment mode names."""
        if v:
            mode_mapping = {
                "local-mock": "local-dev",
                "cloud": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @field_validator('deployment_mode')
    @classmethod
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["local-dev", "aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @field_validator('aws_endpoint_url')
    @classmethod
    def strip_endpoint_url(cls, v):
        return v.rstrip('/') if v else v

    @property
    def uses_mock_endpoint(self) -> bool:
        return self.deployment_mode in ["local-dev", "aws-mock"]

    @property
    def endpoint_url(self) -> Optional[str]:
        """Endpoint for boto3 clients; mock modes default to a local moto server."""
        if self.aws_endpoint_url:
            return self.aws_endpoint_url
        if self.uses_mock_endpoint:
            return "http://localhost:5000"
        return None

    def bucket_for(self, account_id: str) -> str:
        """Source bundle bucket name for the given account."""
        if self.artifact_bucket:
            return self.artifact_bucket
        return f"{self.application_name.lower()}-bundles-{account_id}-{self.aws_region}"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_prefix="DBB_",
        env_file=(".env", ".env.deploy"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> DeploySettings:
    """
    Get cached settings instance.
    This ensures we only create one DeploySettings instance per process.
    """
    return DeploySettings()
