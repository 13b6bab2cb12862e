"""Provisioner backed by boto3: EC2, ECR, IAM, S3 and Elastic Beanstalk."""
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Set, Tuple

from botocore.exceptions import ClientError

from dbbsoft_deploy.applier import Outputs, Provisioner
from dbbsoft_deploy.aws.bundle import build_source_bundle
from dbbsoft_deploy.aws.image import ImagePublisher
from dbbsoft_deploy.aws.utils import AWSClientManager, error_code, error_message, is_throttling
from dbbsoft_deploy.descriptor import (
    Application,
    ComputeEnvironment,
    DeploymentRecord,
    IdentityRole,
    ImageArtifact,
    ImageRepository,
    NetworkRule,
    Resource,
    SecurityGroup,
)
from dbbsoft_deploy.errors import ConfigurationError, ResourceConflictError, SubmissionError
from dbbsoft_deploy.settings import DeploySettings
from dbbsoft_deploy.utils.decorators import log_operation, retry

logger = logging.getLogger(__name__)

CONFLICT_CODES = {
    'InvalidGroup.Duplicate',
    'RepositoryAlreadyExistsException',
    'EntityAlreadyExists',
    'BucketAlreadyExists',
}

# (protocol, port or None for all traffic, cidr)
Permission = Tuple[str, Optional[int], str]


def _permission_key(rule: NetworkRule) -> Permission:
    return (rule.protocol, None if rule.protocol == '-1' else rule.port, rule.source_cidr)


def _observed_permissions(ip_permissions: List[Dict[str, Any]]) -> Set[Permission]:
    observed = set()
    for permission in ip_permissions:
        protocol = permission.get('IpProtocol', '-1')
        port = None if protocol == '-1' else permission.get('FromPort')
        for ip_range in permission.get('IpRanges', []):
            observed.add((protocol, port, ip_range['CidrIp']))
        for ip_range in permission.get('Ipv6Ranges', []):
            observed.add((protocol, port, ip_range['CidrIpv6']))
    return observed


def _ip_permission(permission: Permission, description: str = '') -> Dict[str, Any]:
    protocol, port, cidr = permission
    entry: Dict[str, Any] = {'IpProtocol': protocol}
    if port is not None:
        entry['FromPort'] = port
        entry['ToPort'] = port
    if ':' in cidr:
        ip_range = {'CidrIpv6': cidr}
        key = 'Ipv6Ranges'
    else:
        ip_range = {'CidrIp': cidr}
        key = 'IpRanges'
    if description:
        ip_range['Description'] = description
    entry[key] = [ip_range]
    return entry


def _normalize_option(option_name: str, value: Optional[str]) -> str:
    value = value or ''
    if option_name in ('Subnets', 'SecurityGroups'):
        return ','.join(sorted(v.strip() for v in value.split(',') if v.strip()))
    return value.strip().lower() if value.lower() in ('true', 'false') else value.strip()


@contextmanager
def aws_errors(resource: Resource, operation: str):
    """Translate botocore errors into deployment errors."""
    try:
        yield
    except ClientError as e:
        code = error_code(e)
        message = error_message(e)
        if code in CONFLICT_CODES or (code == 'InvalidParameterValue' and 'already exists' in message):
            raise ResourceConflictError(f"{code}: {message}", resource=resource.key, operation=operation) from e
        raise SubmissionError(f"{code}: {message}", resource=resource.key, operation=operation) from e


class BotoProvisioner(Provisioner):
    """Creates, updates and describes descriptor resources through boto3."""

    def __init__(self, settings: DeploySettings, clients: Optional[AWSClientManager] = None,
                 image_publisher: Optional[ImagePublisher] = None, publish_images: bool = True):
        self.settings = settings
        self.clients = clients or AWSClientManager(settings)
        self.publish_images = publish_images
        self.image_publisher = image_publisher
        self._call_with_retry = retry(
            max_attempts=settings.api_max_attempts,
            delay=settings.api_retry_delay,
            exceptions=(ClientError,),
            should_retry=is_throttling,
            logger_name=__name__,
        )(self._call_once)

    def _call_once(self, service: str, operation: str, **kwargs) -> Dict[str, Any]:
        client = self.clients.get_client(service)
        return getattr(client, operation)(**kwargs)

    def call(self, service: str, operation: str, **kwargs) -> Dict[str, Any]:
        """Call an AWS API; throttling errors are retried with exponential backoff."""
        return self._call_with_retry(service, operation, **kwargs)

    def _handler(self, resource: Resource, action: str):
        return getattr(self, f"_{action}_{resource.kind.value}")

    # Provisioner interface

    def describe(self, resource: Resource, inputs: Dict[str, Any]) -> Optional[Outputs]:
        with aws_errors(resource, 'describe'):
            return self._handler(resource, 'describe')(resource, inputs)

    def create(self, resource: Resource, inputs: Dict[str, Any]) -> Outputs:
        with aws_errors(resource, 'create'):
            return self._handler(resource, 'create')(resource, inputs)

    def needs_update(self, resource: Resource, inputs: Dict[str, Any], observed: Outputs) -> bool:
        with aws_errors(resource, 'compare'):
            return self._handler(resource, 'diff')(resource, inputs, observed)

    def update(self, resource: Resource, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        with aws_errors(resource, 'update'):
            return self._handler(resource, 'update')(resource, inputs, observed)

    def delete(self, resource: Resource, observed: Outputs) -> bool:
        with aws_errors(resource, 'delete'):
            return self._handler(resource, 'delete')(resource, observed)

    def environment_status(self, environment: ComputeEnvironment) -> Dict[str, Any]:
        with aws_errors(environment, 'wait'):
            observed = self._describe_compute_environment(environment, {})
        if observed is None:
            return {'Status': 'Terminated', 'Health': None}
        return {
            'Status': observed['status'],
            'Health': observed['health'],
            'VersionLabel': observed['version_label'],
            'CNAME': observed.get('cname'),
        }

    # Security group

    def _vpc_id(self, vpc: str) -> str:
        if vpc != 'default':
            return vpc
        vpcs = self.call('ec2', 'describe_vpcs', Filters=[{'Name': 'isDefault', 'Values': ['true']}])['Vpcs']
        if not vpcs:
            raise ConfigurationError(f"no default VPC in {self.settings.aws_region}", operation="lookup")
        return vpcs[0]['VpcId']

    def _public_subnets(self, vpc_id: str) -> List[str]:
        subnets = self.call('ec2', 'describe_subnets', Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}])['Subnets']
        public = [s['SubnetId'] for s in subnets if s.get('MapPublicIpOnLaunch')]
        return sorted(public or [s['SubnetId'] for s in subnets])

    def _describe_security_group(self, resource: SecurityGroup, inputs: Dict[str, Any]) -> Optional[Outputs]:
        vpc_id = self._vpc_id(resource.vpc)
        groups = self.call('ec2', 'describe_security_groups', Filters=[
            {'Name': 'group-name', 'Values': [resource.name]},
            {'Name': 'vpc-id', 'Values': [vpc_id]},
        ])['SecurityGroups']
        if not groups:
            return None
        group = groups[0]
        return {
            'group_id': group['GroupId'],
            'vpc_id': vpc_id,
            'subnet_ids': self._public_subnets(vpc_id),
            'ingress': sorted(_observed_permissions(group.get('IpPermissions', [])), key=str),
        }

    @log_operation("Creating security group")
    def _create_security_group(self, resource: SecurityGroup, inputs: Dict[str, Any]) -> Outputs:
        vpc_id = self._vpc_id(resource.vpc)
        group_id = self.call(
            'ec2', 'create_security_group',
            GroupName=resource.name,
            Description=resource.description,
            VpcId=vpc_id,
        )['GroupId']
        inbound = [_ip_permission(_permission_key(r), r.description) for r in resource.inbound_rules]
        if inbound:
            self.call('ec2', 'authorize_security_group_ingress', GroupId=group_id, IpPermissions=inbound)
        for rule in resource.rules:
            if rule.direction == 'outbound':
                self._authorize_egress(group_id, rule)
        logger.info(f"Created security group {resource.name} ({group_id}) in {vpc_id}")
        return {
            'group_id': group_id,
            'vpc_id': vpc_id,
            'subnet_ids': self._public_subnets(vpc_id),
            'ingress': sorted({_permission_key(r) for r in resource.inbound_rules}, key=str),
        }

    def _authorize_egress(self, group_id: str, rule: NetworkRule) -> None:
        try:
            self.call('ec2', 'authorize_security_group_egress', GroupId=group_id,
                      IpPermissions=[_ip_permission(_permission_key(rule), rule.description)])
        except ClientError as e:
            # new groups already allow all outbound traffic
            if error_code(e) != 'InvalidPermission.Duplicate':
                raise

    def _diff_security_group(self, resource: SecurityGroup, inputs: Dict[str, Any], observed: Outputs) -> bool:
        desired = {_permission_key(r) for r in resource.inbound_rules}
        return desired != {tuple(p) for p in observed['ingress']}

    @log_operation("Updating security group rules")
    def _update_security_group(self, resource: SecurityGroup, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        desired = {_permission_key(r): r.description for r in resource.inbound_rules}
        current = {tuple(p) for p in observed['ingress']}
        extra = [_ip_permission(p) for p in current if p not in desired]
        missing = [_ip_permission(p, d) for p, d in desired.items() if p not in current]
        if extra:
            self.call('ec2', 'revoke_security_group_ingress', GroupId=observed['group_id'], IpPermissions=extra)
        if missing:
            self.call('ec2', 'authorize_security_group_ingress', GroupId=observed['group_id'], IpPermissions=missing)
        return {**observed, 'ingress': sorted(desired, key=str)}

    def _delete_security_group(self, resource: SecurityGroup, observed: Outputs) -> bool:
        self.call('ec2', 'delete_security_group', GroupId=observed['group_id'])
        logger.info(f"Deleted security group {resource.name}")
        return True

    # ECR repository

    def _describe_image_repository(self, resource: ImageRepository, inputs: Dict[str, Any]) -> Optional[Outputs]:
        try:
            repositories = self.call('ecr', 'describe_repositories', repositoryNames=[resource.name])['repositories']
        except ClientError as e:
            if error_code(e) == 'RepositoryNotFoundException':
                return None
            raise
        repository = repositories[0]
        return {
            'repository_uri': repository['repositoryUri'],
            'repository_arn': repository['repositoryArn'],
            'scan_on_push': repository.get('imageScanningConfiguration', {}).get('scanOnPush', False),
        }

    @log_operation("Creating ECR repository")
    def _create_image_repository(self, resource: ImageRepository, inputs: Dict[str, Any]) -> Outputs:
        repository = self.call(
            'ecr', 'create_repository',
            repositoryName=resource.name,
            imageTagMutability='IMMUTABLE',
            imageScanningConfiguration={'scanOnPush': resource.scan_on_push},
        )['repository']
        logger.info(f"Created ECR repository: {repository['repositoryUri']} (retention: {resource.retention_policy})")
        return {
            'repository_uri': repository['repositoryUri'],
            'repository_arn': repository['repositoryArn'],
            'scan_on_push': resource.scan_on_push,
        }

    def _diff_image_repository(self, resource: ImageRepository, inputs: Dict[str, Any], observed: Outputs) -> bool:
        return observed['scan_on_push'] != resource.scan_on_push

    def _update_image_repository(self, resource: ImageRepository, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        self.call('ecr', 'put_image_scanning_configuration', repositoryName=resource.name,
                  imageScanningConfiguration={'scanOnPush': resource.scan_on_push})
        return {**observed, 'scan_on_push': resource.scan_on_push}

    def _delete_image_repository(self, resource: ImageRepository, observed: Outputs) -> bool:
        if resource.retention_policy != 'destroy':
            logger.info(f"Keeping ECR repository {resource.name} (retention policy: {resource.retention_policy})")
            return False
        self.call('ecr', 'delete_repository', repositoryName=resource.name, force=True)
        logger.info(f"Deleted ECR repository {resource.name} and its images")
        return True

    # Image artifact

    def _describe_image_artifact(self, resource: ImageArtifact, inputs: Dict[str, Any]) -> Optional[Outputs]:
        try:
            images = self.call('ecr', 'describe_images', repositoryName=resource.repository.name,
                               imageIds=[{'imageTag': str(resource.tag)}])['imageDetails']
        except ClientError as e:
            if error_code(e) in ('ImageNotFoundException', 'RepositoryNotFoundException'):
                return None
            raise
        if not images:
            return None
        return {
            'image_uri': f"{inputs.get('repository_uri', resource.repository.name)}:{resource.tag}",
            'image_digest': images[0].get('imageDigest'),
        }

    def _create_image_artifact(self, resource: ImageArtifact, inputs: Dict[str, Any]) -> Outputs:
        if not self.publish_images:
            raise ConfigurationError(
                f"image tag {resource.tag} is not in {resource.repository.name} and image publishing is disabled",
                resource=resource.key,
                operation="create",
            )
        publisher = self.image_publisher or ImagePublisher(self.clients.get_client('ecr'))
        image_uri = publisher.publish(resource, inputs['repository_uri'])
        return {'image_uri': image_uri, 'image_digest': None}

    def _diff_image_artifact(self, resource: ImageArtifact, inputs: Dict[str, Any], observed: Outputs) -> bool:
        # tags are immutable
        return False

    def _update_image_artifact(self, resource: ImageArtifact, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        return observed

    def _delete_image_artifact(self, resource: ImageArtifact, observed: Outputs) -> bool:
        return False

    # IAM role and instance profile

    def _describe_identity_role(self, resource: IdentityRole, inputs: Dict[str, Any]) -> Optional[Outputs]:
        try:
            role = self.call('iam', 'get_role', RoleName=resource.name)['Role']
        except ClientError as e:
            if error_code(e) == 'NoSuchEntity':
                return None
            raise
        attached = self.call('iam', 'list_attached_role_policies', RoleName=resource.name)['AttachedPolicies']
        try:
            profile = self.call('iam', 'get_instance_profile',
                                InstanceProfileName=resource.instance_profile_name)['InstanceProfile']
            profile_roles = [r['RoleName'] for r in profile.get('Roles', [])]
            profile_arn = profile['Arn']
        except ClientError as e:
            if error_code(e) != 'NoSuchEntity':
                raise
            profile_roles, profile_arn = [], None
        return {
            'role_arn': role['Arn'],
            'role_name': resource.name,
            'attached_policies': sorted(p['PolicyArn'] for p in attached),
            'instance_profile': resource.instance_profile_name if profile_arn else None,
            'instance_profile_arn': profile_arn,
            'profile_roles': profile_roles,
        }

    def _ensure_instance_profile(self, resource: IdentityRole, observed: Optional[Outputs]) -> str:
        profile_arn = observed.get('instance_profile_arn') if observed else None
        if not profile_arn:
            profile_arn = self.call('iam', 'create_instance_profile',
                                    InstanceProfileName=resource.instance_profile_name)['InstanceProfile']['Arn']
        if not observed or resource.name not in observed.get('profile_roles', []):
            self.call('iam', 'add_role_to_instance_profile',
                      InstanceProfileName=resource.instance_profile_name, RoleName=resource.name)
        # EB rejects instance profiles IAM has not propagated yet
        self.clients.get_client('iam').get_waiter('instance_profile_exists').wait(
            InstanceProfileName=resource.instance_profile_name
        )
        return profile_arn

    @log_operation("Creating IAM instance role")
    def _create_identity_role(self, resource: IdentityRole, inputs: Dict[str, Any]) -> Outputs:
        role = self.call('iam', 'create_role', RoleName=resource.name,
                         AssumeRolePolicyDocument=json.dumps(resource.trust_policy()))['Role']
        for policy_arn in resource.attached_policies:
            self.call('iam', 'attach_role_policy', RoleName=resource.name, PolicyArn=policy_arn)
        profile_arn = self._ensure_instance_profile(resource, None)
        logger.info(f"Created IAM role {resource.name} with {len(resource.attached_policies)} policies")
        return {
            'role_arn': role['Arn'],
            'role_name': resource.name,
            'attached_policies': sorted(resource.attached_policies),
            'instance_profile': resource.instance_profile_name,
            'instance_profile_arn': profile_arn,
            'profile_roles': [resource.name],
        }

    def _diff_identity_role(self, resource: IdentityRole, inputs: Dict[str, Any], observed: Outputs) -> bool:
        return (
            set(observed['attached_policies']) != set(resource.attached_policies)
            or not observed['instance_profile']
            or resource.name not in observed['profile_roles']
        )

    @log_operation("Updating IAM instance role")
    def _update_identity_role(self, resource: IdentityRole, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        current = set(observed['attached_policies'])
        desired = set(resource.attached_policies)
        for policy_arn in sorted(desired - current):
            self.call('iam', 'attach_role_policy', RoleName=resource.name, PolicyArn=policy_arn)
        for policy_arn in sorted(current - desired):
            self.call('iam', 'detach_role_policy', RoleName=resource.name, PolicyArn=policy_arn)
        profile_arn = self._ensure_instance_profile(resource, observed)
        return {
            **observed,
            'attached_policies': sorted(desired),
            'instance_profile': resource.instance_profile_name,
            'instance_profile_arn': profile_arn,
            'profile_roles': sorted(set(observed['profile_roles']) | {resource.name}),
        }

    def _delete_identity_role(self, resource: IdentityRole, observed: Outputs) -> bool:
        if observed.get('instance_profile_arn'):
            if resource.name in observed.get('profile_roles', []):
                self.call('iam', 'remove_role_from_instance_profile',
                          InstanceProfileName=resource.instance_profile_name, RoleName=resource.name)
            self.call('iam', 'delete_instance_profile', InstanceProfileName=resource.instance_profile_name)
        for policy_arn in observed.get('attached_policies', []):
            self.call('iam', 'detach_role_policy', RoleName=resource.name, PolicyArn=policy_arn)
        self.call('iam', 'delete_role', RoleName=resource.name)
        logger.info(f"Deleted IAM role {resource.name}")
        return True

    # Elastic Beanstalk application

    def _describe_application(self, resource: Application, inputs: Dict[str, Any]) -> Optional[Outputs]:
        applications = self.call('elasticbeanstalk', 'describe_applications',
                                 ApplicationNames=[resource.name])['Applications']
        if not applications:
            return None
        return {
            'application_name': resource.name,
            'application_arn': applications[0].get('ApplicationArn'),
            'description': applications[0].get('Description', ''),
        }

    @log_operation("Creating EB application")
    def _create_application(self, resource: Application, inputs: Dict[str, Any]) -> Outputs:
        application = self.call('elasticbeanstalk', 'create_application',
                                ApplicationName=resource.name, Description=resource.description)['Application']
        logger.info(f"Created EB application: {resource.name}")
        return {
            'application_name': resource.name,
            'application_arn': application.get('ApplicationArn'),
            'description': resource.description,
        }

    def _diff_application(self, resource: Application, inputs: Dict[str, Any], observed: Outputs) -> bool:
        return observed.get('description', '') != resource.description

    def _update_application(self, resource: Application, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        self.call('elasticbeanstalk', 'update_application',
                  ApplicationName=resource.name, Description=resource.description)
        return {**observed, 'description': resource.description}

    def _delete_application(self, resource: Application, observed: Outputs) -> bool:
        # deleting the application would delete every version kept for rollback
        logger.info(f"Keeping EB application {resource.name} and its versions")
        return False

    # Deployment record (application version)

    def _describe_deployment_record(self, resource: DeploymentRecord, inputs: Dict[str, Any]) -> Optional[Outputs]:
        versions = self.call('elasticbeanstalk', 'describe_application_versions',
                             ApplicationName=resource.application.name,
                             VersionLabels=[resource.version_label])['ApplicationVersions']
        if not versions:
            return None
        bundle = versions[0].get('SourceBundle', {})
        return {
            'version_label': resource.version_label,
            'source_bucket': bundle.get('S3Bucket'),
            'source_key': bundle.get('S3Key'),
            'status': versions[0].get('Status'),
        }

    def _ensure_bucket(self, bucket: str) -> None:
        try:
            if self.settings.aws_region == 'us-east-1':
                self.call('s3', 'create_bucket', Bucket=bucket)
            else:
                self.call('s3', 'create_bucket', Bucket=bucket,
                          CreateBucketConfiguration={'LocationConstraint': self.settings.aws_region})
            logger.info(f"Created S3 bucket: {bucket}")
        except ClientError as e:
            if error_code(e) != 'BucketAlreadyOwnedByYou':
                raise
            logger.info(f"S3 bucket already owned by you: {bucket}")

    @log_operation("Creating application version")
    def _create_deployment_record(self, resource: DeploymentRecord, inputs: Dict[str, Any]) -> Outputs:
        bucket = resource.source_location.bucket or self.settings.bucket_for(self.clients.account_id())
        key = resource.source_location.key
        self._ensure_bucket(bucket)
        self.call('s3', 'put_object', Bucket=bucket, Key=key, Body=build_source_bundle(resource.bundle))
        logger.info(f"Uploaded source bundle to s3://{bucket}/{key}")

        self.call(
            'elasticbeanstalk', 'create_application_version',
            ApplicationName=inputs.get('application_name', resource.application.name),
            VersionLabel=resource.version_label,
            Description=resource.description,
            SourceBundle={'S3Bucket': bucket, 'S3Key': key},
        )
        return {
            'version_label': resource.version_label,
            'source_bucket': bucket,
            'source_key': key,
            'status': 'UNPROCESSED',
        }

    def _diff_deployment_record(self, resource: DeploymentRecord, inputs: Dict[str, Any], observed: Outputs) -> bool:
        # versions are immutable, a new version gets a new record
        return False

    def _update_deployment_record(self, resource: DeploymentRecord, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        return observed

    def _delete_deployment_record(self, resource: DeploymentRecord, observed: Outputs) -> bool:
        return False

    # Compute environment

    def _describe_compute_environment(self, resource: ComputeEnvironment, inputs: Dict[str, Any]) -> Optional[Outputs]:
        environments = self.call('elasticbeanstalk', 'describe_environments',
                                 ApplicationName=resource.application.name,
                                 EnvironmentNames=[resource.name])['Environments']
        live = [e for e in environments if e.get('Status') not in ('Terminated', 'Terminating')]
        if not live:
            return None
        environment = live[0]
        return {
            'environment_id': environment.get('EnvironmentId'),
            'environment_name': resource.name,
            'version_label': environment.get('VersionLabel'),
            'status': environment.get('Status'),
            'health': environment.get('Health'),
            'cname': environment.get('CNAME'),
        }

    @log_operation("Creating EB environment")
    def _create_compute_environment(self, resource: ComputeEnvironment, inputs: Dict[str, Any]) -> Outputs:
        placement = inputs['placement']
        environment = self.call(
            'elasticbeanstalk', 'create_environment',
            ApplicationName=inputs['application_name'],
            EnvironmentName=resource.name,
            SolutionStackName=resource.solution_stack,
            VersionLabel=placement.version_label,
            OptionSettings=resource.option_settings(placement),
        )
        logger.info(f"Created EB environment: {resource.name} running {placement.image_uri}")
        return {
            'environment_id': environment.get('EnvironmentId'),
            'environment_name': resource.name,
            'version_label': placement.version_label,
            'status': environment.get('Status'),
            'health': environment.get('Health'),
            'cname': environment.get('CNAME'),
        }

    def _current_options(self, resource: ComputeEnvironment) -> Dict[Tuple[str, str], str]:
        configurations = self.call('elasticbeanstalk', 'describe_configuration_settings',
                                   ApplicationName=resource.application.name,
                                   EnvironmentName=resource.name)['ConfigurationSettings']
        if not configurations:
            return {}
        return {
            (o['Namespace'], o['OptionName']): o.get('Value', '')
            for o in configurations[0].get('OptionSettings', [])
        }

    def _diff_compute_environment(self, resource: ComputeEnvironment, inputs: Dict[str, Any], observed: Outputs) -> bool:
        placement = inputs['placement']
        if observed.get('version_label') != placement.version_label:
            return True
        current = self._current_options(resource)
        for option in resource.option_settings(placement):
            key = (option['Namespace'], option['OptionName'])
            if _normalize_option(key[1], current.get(key)) != _normalize_option(key[1], option['Value']):
                logger.info(f"Option {key[0]}:{key[1]} changed")
                return True
        return False

    @log_operation("Updating EB environment")
    def _update_compute_environment(self, resource: ComputeEnvironment, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        placement = inputs['placement']
        environment = self.call(
            'elasticbeanstalk', 'update_environment',
            ApplicationName=inputs['application_name'],
            EnvironmentName=resource.name,
            VersionLabel=placement.version_label,
            OptionSettings=resource.option_settings(placement),
        )
        logger.info(f"Deploying version {placement.version_label} to {resource.name}")
        return {
            **observed,
            'version_label': placement.version_label,
            'status': environment.get('Status', observed.get('status')),
            'health': environment.get('Health', observed.get('health')),
        }

    def _delete_compute_environment(self, resource: ComputeEnvironment, observed: Outputs) -> bool:
        self.call('elasticbeanstalk', 'terminate_environment', EnvironmentName=resource.name)
        logger.info(f"Terminating EB environment: {resource.name}")
        # the security group stays in use until the instances are gone
        waiter = self.clients.get_client('elasticbeanstalk').get_waiter('environment_terminated')
        waiter.wait(ApplicationName=resource.application.name, EnvironmentNames=[resource.name])
        return True
