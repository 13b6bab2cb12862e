"""Descriptor builder for the Elastic Beanstalk Docker web service."""
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from pydantic import ValidationError

from dbbsoft_deploy.descriptor import (
    Application,
    BundleSpec,
    ComputeEnvironment,
    Descriptor,
    DeploymentRecord,
    EnvironmentOptions,
    IdentityRole,
    ImageArtifact,
    ImageRepository,
    InstanceSizing,
    NetworkRule,
    Resource,
    ResourceKind,
    S3Location,
    SecurityGroup,
    VersionTag,
)
from dbbsoft_deploy.errors import ConfigurationError
from dbbsoft_deploy.graph import topological_order
from dbbsoft_deploy.settings import DeploySettings, get_settings
from dbbsoft_deploy.version import read_version_tag

logger = logging.getLogger(__name__)


class DescriptorBuilder:
    """Builder for the deployment descriptor.

    Pure construction: no AWS calls are made. Steps can be chained, e.g.
    ``DescriptorBuilder(settings).with_version(tag).build_security_group()...``,
    or run all at once with ``build(tag)``.
    """

    def __init__(self, settings: Optional[DeploySettings] = None):
        self.settings = settings or get_settings()
        self.version: Optional[VersionTag] = None
        self.resources: Dict[ResourceKind, Resource] = {}

    def _require_version(self) -> VersionTag:
        if self.version is None:
            raise ConfigurationError("no version set on builder", operation="build")
        return self.version

    def _require(self, kind: ResourceKind) -> Resource:
        if kind not in self.resources:
            raise ConfigurationError(f"{kind.value} must be built first", operation="build")
        return self.resources[kind]

    def with_version(self, version: Union[VersionTag, str]) -> 'DescriptorBuilder':
        if isinstance(version, str):
            try:
                version = VersionTag(value=version)
            except ValidationError as e:
                raise ConfigurationError(
                    f"invalid version {version!r}: {e.errors()[0]['msg']}", operation="build"
                ) from e
        self.version = version
        return self

    def build_security_group(self, rules: Optional[Sequence[NetworkRule]] = None) -> 'DescriptorBuilder':
        """Security group with an inbound rule for the public port unless rules are given."""
        if rules is None:
            rules = [
                NetworkRule(
                    protocol="tcp",
                    port=self.settings.public_port,
                    source_cidr=self.settings.ingress_cidr,
                    direction="inbound",
                    description="Allow HTTP traffic",
                )
            ]
        self.resources[ResourceKind.SECURITY_GROUP] = SecurityGroup(
            name=self.settings.security_group_name,
            vpc=self.settings.vpc,
            rules=tuple(rules),
        )
        return self

    def build_image_repository(self) -> 'DescriptorBuilder':
        self.resources[ResourceKind.IMAGE_REPOSITORY] = ImageRepository(
            name=self.settings.repository_name,
            retention_policy=self.settings.repository_retention,
        )
        return self

    def build_image_artifact(self) -> 'DescriptorBuilder':
        version = self._require_version()
        repository = self._require(ResourceKind.IMAGE_REPOSITORY)
        self.resources[ResourceKind.IMAGE_ARTIFACT] = ImageArtifact(
            name=f"{repository.name}:{version}",
            repository=repository.ref,
            tag=version,
            build_context=str(self.settings.image_build_context),
            dockerfile=str(self.settings.image_dockerfile) if self.settings.image_dockerfile else None,
            platform=self.settings.image_platform,
        )
        return self

    def build_identity_role(self) -> 'DescriptorBuilder':
        self.resources[ResourceKind.IDENTITY_ROLE] = IdentityRole(name=self.settings.role_name)
        return self

    def build_application(self) -> 'DescriptorBuilder':
        self.resources[ResourceKind.APPLICATION] = Application(
            name=self.settings.application_name,
            description=f"{self.settings.application_name} demo web service",
        )
        return self

    def build_deployment_record(self) -> 'DescriptorBuilder':
        version = self._require_version()
        application = self._require(ResourceKind.APPLICATION)
        self.resources[ResourceKind.DEPLOYMENT_RECORD] = DeploymentRecord(
            name=str(version),
            application=application.ref,
            version_label=str(version),
            source_location=S3Location(
                bucket=self._bundle_bucket(),
                key=f"bundles/{version}.zip",
            ),
            bundle=BundleSpec(
                image_env_var=self.settings.image_env_var,
                public_port=self.settings.public_port,
                container_port=self.settings.container_port,
            ),
            description=f"Version {version}",
        )
        return self

    def _bundle_bucket(self) -> Optional[str]:
        if self.settings.artifact_bucket:
            return self.settings.artifact_bucket
        if self.settings.aws_account_id:
            return self.settings.bucket_for(self.settings.aws_account_id)
        # resolved by the provisioner from the caller's account
        return None

    def build_compute_environment(self) -> 'DescriptorBuilder':
        version = self._require_version()
        repository = self._require(ResourceKind.IMAGE_REPOSITORY)
        self.resources[ResourceKind.COMPUTE_ENVIRONMENT] = ComputeEnvironment(
            name=self.settings.environment_name,
            application=self._require(ResourceKind.APPLICATION).ref,
            solution_stack=self.settings.solution_stack,
            network_placement=self._require(ResourceKind.SECURITY_GROUP).ref,
            instance_sizing=InstanceSizing(
                instance_type=self.settings.instance_type,
                environment_type=self.settings.environment_type,
            ),
            identity_binding=self._require(ResourceKind.IDENTITY_ROLE).ref,
            image_repository=repository.ref,
            image=self._require(ResourceKind.IMAGE_ARTIFACT).ref,
            image_reference=f"{repository.name}:{version}",
            deployment_record=self._require(ResourceKind.DEPLOYMENT_RECORD).ref,
            options=EnvironmentOptions(
                image_env_var=self.settings.image_env_var,
                environment_variables={"APP_VERSION": str(version)},
            ),
        )
        return self

    def validate(self) -> Descriptor:
        """Check internal consistency and return the descriptor."""
        version = self._require_version()
        descriptor = Descriptor(version=version, resources=tuple(self.resources.values()))
        descriptor.validate_references()
        environment = descriptor.compute_environment

        security_group = descriptor.get(environment.network_placement)
        if not isinstance(security_group, SecurityGroup) or not security_group.allows_inbound(self.settings.public_port):
            raise ConfigurationError(
                f"no inbound network rule permits public port {self.settings.public_port}",
                resource=environment.network_placement.key,
                operation="validate",
            )

        # surfaces cycles before anything is submitted
        topological_order(descriptor.resources)
        return descriptor

    def build(self, version: Union[VersionTag, str, None] = None) -> Descriptor:
        """Build every resource and validate the result."""
        if version is not None:
            self.with_version(version)
        if ResourceKind.SECURITY_GROUP not in self.resources:
            self.build_security_group()
        return (
            self.build_image_repository()
            .build_image_artifact()
            .build_identity_role()
            .build_application()
            .build_deployment_record()
            .build_compute_environment()
            .validate()
        )


def build_descriptor(settings: Optional[DeploySettings] = None,
                     manifest_path: Union[str, Path, None] = None) -> Descriptor:
    """Read the version from the manifest and build the full descriptor."""
    settings = settings or get_settings()
    version = read_version_tag(manifest_path or settings.manifest_path)
    descriptor = DescriptorBuilder(settings).build(version)
    logger.info(f"Built descriptor for {settings.application_name} {version} "
                f"({len(descriptor.resources)} resources)")
    return descriptor
