#######################################
# --- Deployment descriptor model --- #
#######################################
"""
Immutable models for the resources a deployment needs.

Every resource is addressed by a ``ResourceRef`` (kind + name). Resources
refer to each other only through refs; the applier resolves refs to real
identifiers (security group id, instance profile, registry URI) at apply
time, which keeps the descriptor free of provider state.
"""
import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dbbsoft_deploy.errors import ConfigurationError

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)

# Minimal managed policies for an EB Docker web instance pulling from ECR
WEB_TIER_POLICY = "arn:aws:iam::aws:policy/AWSElasticBeanstalkWebTier"
ECR_READ_ONLY_POLICY = "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"


class ResourceKind(str, Enum):
    """Kinds of resources, in the order they are usually created."""
    SECURITY_GROUP = "security_group"
    IMAGE_REPOSITORY = "image_repository"
    IMAGE_ARTIFACT = "image_artifact"
    IDENTITY_ROLE = "identity_role"
    APPLICATION = "application"
    DEPLOYMENT_RECORD = "deployment_record"
    COMPUTE_ENVIRONMENT = "compute_environment"


class VersionTag(BaseModel):
    """Semantic version used verbatim as the image tag and version label."""
    model_config = ConfigDict(frozen=True)

    value: str

    @field_validator("value")
    @classmethod
    def check_semver(cls, v: str) -> str:
        if not v:
            raise ValueError("version must not be empty")
        if v.lower() == "latest":
            raise ValueError("'latest' is not an immutable version")
        if not SEMVER_PATTERN.match(v):
            raise ValueError(f"'{v}' is not a semantic version")
        return v

    def __str__(self) -> str:
        return self.value


class ResourceRef(BaseModel):
    """Pointer from one resource to another."""
    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    name: str

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.name}"


class Resource(BaseModel):
    """Base class for everything the applier provisions."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ClassVar[ResourceKind]

    name: str = Field(min_length=1)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(kind=self.kind, name=self.name)

    @property
    def key(self) -> str:
        return self.ref.key

    def references(self) -> List[ResourceRef]:
        """Resources that must exist before this one."""
        return []

    def depends_on(self) -> List[str]:
        return [ref.key for ref in self.references()]


class NetworkRule(BaseModel):
    """A single firewall rule."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol: Literal["tcp", "udp", "-1"] = "tcp"
    port: int = Field(ge=1, le=65535)
    source_cidr: str = "0.0.0.0/0"
    direction: Literal["inbound", "outbound"] = "inbound"
    description: str = ""

    @field_validator("source_cidr")
    @classmethod
    def check_cidr(cls, v: str) -> str:
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"invalid CIDR '{v}': {e}")
        return v

    def permits_inbound(self, port: int) -> bool:
        return self.direction == "inbound" and self.protocol in ("tcp", "-1") and (
            self.protocol == "-1" or self.port == port
        )


class SecurityGroup(Resource):
    """Set of network rules placed in a VPC."""
    kind: ClassVar[ResourceKind] = ResourceKind.SECURITY_GROUP

    description: str = "Allow HTTP access"
    vpc: str = "default"
    rules: Tuple[NetworkRule, ...] = ()

    def allows_inbound(self, port: int) -> bool:
        return any(rule.permits_inbound(port) for rule in self.rules)

    @property
    def inbound_rules(self) -> Tuple[NetworkRule, ...]:
        return tuple(rule for rule in self.rules if rule.direction == "inbound")


class ImageRepository(Resource):
    kind: ClassVar[ResourceKind] = ResourceKind.IMAGE_REPOSITORY

    retention_policy: Literal["retain", "destroy"]
    scan_on_push: bool = True


class ImageArtifact(Resource):
    """A built image pushed into a repository under a version tag."""
    kind: ClassVar[ResourceKind] = ResourceKind.IMAGE_ARTIFACT

    repository: ResourceRef
    tag: VersionTag
    build_context: str
    dockerfile: Optional[str] = None
    platform: str = "linux/amd64"

    def references(self) -> List[ResourceRef]:
        return [self.repository]


class IdentityRole(Resource):
    """Instance role plus the instance profile of the same name wrapping it."""
    kind: ClassVar[ResourceKind] = ResourceKind.IDENTITY_ROLE

    trusted_principal: str = "ec2.amazonaws.com"
    attached_policies: Tuple[str, ...] = (WEB_TIER_POLICY, ECR_READ_ONLY_POLICY)

    @property
    def instance_profile_name(self) -> str:
        return self.name

    def trust_policy(self) -> Dict[str, Any]:
        return {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": self.trusted_principal},
                    "Action": "sts:AssumeRole",
                }
            ],
        }


class Application(Resource):
    kind: ClassVar[ResourceKind] = ResourceKind.APPLICATION

    description: str = ""


class S3Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # None means the provisioner picks the account's default bundle bucket
    bucket: Optional[str] = None
    key: str


class BundleSpec(BaseModel):
    """What goes into the source bundle's container manifest."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    image_env_var: str = "IMAGE_URI"
    public_port: int = Field(default=80, ge=1, le=65535)
    container_port: int = Field(default=8080, ge=1, le=65535)


class DeploymentRecord(Resource):
    """Application version; one per VersionTag, kept for rollback."""
    kind: ClassVar[ResourceKind] = ResourceKind.DEPLOYMENT_RECORD

    application: ResourceRef
    version_label: str
    source_location: S3Location
    bundle: BundleSpec = BundleSpec()
    description: str = ""

    def references(self) -> List[ResourceRef]:
        return [self.application]


class InstanceSizing(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    instance_type: str = "t3.micro"
    environment_type: Literal["SingleInstance", "LoadBalanced"] = "SingleInstance"


class EnvironmentOptions(BaseModel):
    """Typed replacement for Elastic Beanstalk namespace/key/value option triples."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    associate_public_ip: bool = True
    image_env_var: str = "IMAGE_URI"
    health_check_path: str = "/health"
    environment_variables: Dict[str, str] = Field(default_factory=dict)

    @field_validator("image_env_var")
    @classmethod
    def check_env_var_name(cls, v: str) -> str:
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", v):
            raise ValueError(f"invalid environment variable name '{v}'")
        return v


@dataclass(frozen=True)
class ResolvedPlacement:
    """Provider identifiers the compute environment needs, known only at apply time."""
    vpc_id: str
    subnet_ids: Tuple[str, ...]
    security_group_id: str
    instance_profile: str
    image_uri: str
    version_label: str


class ComputeEnvironment(Resource):
    kind: ClassVar[ResourceKind] = ResourceKind.COMPUTE_ENVIRONMENT

    application: ResourceRef
    solution_stack: str
    network_placement: ResourceRef
    instance_sizing: InstanceSizing = InstanceSizing()
    identity_binding: ResourceRef
    image_repository: ResourceRef
    image: ResourceRef
    image_reference: str
    deployment_record: ResourceRef
    options: EnvironmentOptions = EnvironmentOptions()

    def references(self) -> List[ResourceRef]:
        return [
            self.network_placement,
            self.identity_binding,
            self.image_repository,
            self.image,
            self.application,
            self.deployment_record,
        ]

    def option_settings(self, placement: ResolvedPlacement) -> List[Dict[str, str]]:
        """Render the EB option settings once references are resolved."""
        settings = [
            ('aws:ec2:vpc', 'VPCId', placement.vpc_id),
            ('aws:ec2:vpc', 'Subnets', ','.join(placement.subnet_ids)),
            ('aws:ec2:vpc', 'AssociatePublicIpAddress', str(self.options.associate_public_ip).lower()),
            ('aws:autoscaling:launchconfiguration', 'IamInstanceProfile', placement.instance_profile),
            ('aws:autoscaling:launchconfiguration', 'InstanceType', self.instance_sizing.instance_type),
            ('aws:autoscaling:launchconfiguration', 'SecurityGroups', placement.security_group_id),
            ('aws:elasticbeanstalk:environment', 'EnvironmentType', self.instance_sizing.environment_type),
            ('aws:elasticbeanstalk:application', 'Application Healthcheck URL', self.options.health_check_path),
            ('aws:elasticbeanstalk:application:environment', self.options.image_env_var, placement.image_uri),
        ]
        for key, value in sorted(self.options.environment_variables.items()):
            settings.append(('aws:elasticbeanstalk:application:environment', key, value))
        return [
            {'Namespace': namespace, 'OptionName': option, 'Value': value}
            for namespace, option, value in settings
        ]


@dataclass(frozen=True)
class Descriptor:
    """A fully-linked set of resources for one version."""
    version: VersionTag
    resources: Tuple[Resource, ...] = field(default_factory=tuple)

    def get(self, ref: ResourceRef) -> Optional[Resource]:
        for resource in self.resources:
            if resource.key == ref.key:
                return resource
        return None

    def by_kind(self, kind: ResourceKind) -> List[Resource]:
        return [r for r in self.resources if r.kind == kind]

    @property
    def compute_environment(self) -> ComputeEnvironment:
        environments = self.by_kind(ResourceKind.COMPUTE_ENVIRONMENT)
        if len(environments) != 1:
            raise ConfigurationError(
                f"descriptor must contain exactly one compute environment, found {len(environments)}"
            )
        return environments[0]

    def validate_references(self) -> None:
        """Fail on duplicate keys and on references to resources not in the descriptor."""
        keys = [r.key for r in self.resources]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ConfigurationError(f"duplicate resources: {', '.join(duplicates)}")

        known = set(keys)
        for resource in self.resources:
            for dependency in resource.depends_on():
                if dependency not in known:
                    raise ConfigurationError(
                        f"dangling reference to {dependency}",
                        resource=resource.key,
                        operation="validate",
                    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version.value,
            "resources": [
                {"kind": r.kind.value, **r.model_dump(mode="json")}
                for r in self.resources
            ],
        }
