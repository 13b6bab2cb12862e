import pytest
from pydantic import ValidationError

from dbbsoft_deploy.builder import DescriptorBuilder, build_descriptor
from dbbsoft_deploy.descriptor import (
    ECR_READ_ONLY_POLICY,
    WEB_TIER_POLICY,
    ComputeEnvironment,
    EnvironmentOptions,
    NetworkRule,
    ResolvedPlacement,
    ResourceKind,
)
from dbbsoft_deploy.errors import ConfigurationError
from tests.consts import TEST_BUNDLE_BUCKET


def test_exactly_one_compute_environment(descriptor):
    environments = descriptor.by_kind(ResourceKind.COMPUTE_ENVIRONMENT)
    assert len(environments) == 1
    assert isinstance(descriptor.compute_environment, ComputeEnvironment)


def test_image_reference_uses_version_tag(descriptor):
    assert descriptor.compute_environment.image_reference == "dbbsoftt-repo:1.2.3"
    artifact = descriptor.by_kind(ResourceKind.IMAGE_ARTIFACT)[0]
    assert artifact.name == "dbbsoftt-repo:1.2.3"
    assert str(artifact.tag) == "1.2.3"


def test_descriptor_has_no_dangling_references(descriptor):
    descriptor.validate_references()
    keys = {r.key for r in descriptor.resources}
    for resource in descriptor.resources:
        assert set(resource.depends_on()) <= keys


def test_compute_environment_dependencies(descriptor):
    environment = descriptor.compute_environment
    assert environment.network_placement.kind == ResourceKind.SECURITY_GROUP
    assert environment.identity_binding.kind == ResourceKind.IDENTITY_ROLE
    assert environment.image_repository.kind == ResourceKind.IMAGE_REPOSITORY
    assert environment.deployment_record.name == "1.2.3"


def test_identity_role_has_minimal_policies(descriptor):
    role = descriptor.by_kind(ResourceKind.IDENTITY_ROLE)[0]
    assert set(role.attached_policies) == {WEB_TIER_POLICY, ECR_READ_ONLY_POLICY}
    assert role.trusted_principal == "ec2.amazonaws.com"


def test_deployment_record(descriptor):
    record = descriptor.by_kind(ResourceKind.DEPLOYMENT_RECORD)[0]
    assert record.version_label == "1.2.3"
    assert record.description == "Version 1.2.3"
    assert record.source_location.bucket == TEST_BUNDLE_BUCKET
    assert record.source_location.key == "bundles/1.2.3.zip"


def test_repository_retention_comes_from_settings(deploy_settings):
    settings = deploy_settings.model_copy(update={"repository_retention": "destroy"})
    descriptor = DescriptorBuilder(settings).build("1.0.0")
    assert descriptor.by_kind(ResourceKind.IMAGE_REPOSITORY)[0].retention_policy == "destroy"


@pytest.mark.parametrize("version", ["latest", "", "1.2", "v1.2.3"])
def test_invalid_version_is_a_configuration_error(deploy_settings, version):
    with pytest.raises(ConfigurationError) as exc_info:
        DescriptorBuilder(deploy_settings).build(version)
    assert exc_info.value.operation == "build"


def test_missing_inbound_rule_for_public_port(deploy_settings):
    builder = DescriptorBuilder(deploy_settings).build_security_group(
        rules=[NetworkRule(port=443, description="https only")]
    )
    with pytest.raises(ConfigurationError) as exc_info:
        builder.build("1.2.3")
    assert "public port 80" in str(exc_info.value)
    assert exc_info.value.operation == "validate"


def test_outbound_rule_does_not_open_public_port(deploy_settings):
    builder = DescriptorBuilder(deploy_settings).build_security_group(
        rules=[NetworkRule(port=80, direction="outbound")]
    )
    with pytest.raises(ConfigurationError):
        builder.build("1.2.3")


def test_all_traffic_rule_opens_public_port(deploy_settings):
    builder = DescriptorBuilder(deploy_settings).build_security_group(
        rules=[NetworkRule(protocol="-1", port=1, source_cidr="10.0.0.0/8")]
    )
    descriptor = builder.build("1.2.3")
    assert descriptor.compute_environment.image_reference == "dbbsoftt-repo:1.2.3"


def test_steps_out_of_order(deploy_settings):
    with pytest.raises(ConfigurationError):
        DescriptorBuilder(deploy_settings).with_version("1.2.3").build_compute_environment()


def test_build_descriptor_reads_manifest(deploy_settings, manifest_file):
    descriptor = build_descriptor(deploy_settings, manifest_file)
    assert str(descriptor.version) == "1.2.3"


def test_build_descriptor_missing_manifest(deploy_settings, tmp_path):
    with pytest.raises(ConfigurationError):
        build_descriptor(deploy_settings, tmp_path / "package.json")


def test_unknown_option_is_rejected():
    with pytest.raises(ValidationError):
        EnvironmentOptions(InstanceTyp="t3.micro")


def test_invalid_cidr_is_rejected():
    with pytest.raises(ValidationError):
        NetworkRule(port=80, source_cidr="not-a-cidr")


def test_option_settings_render(descriptor):
    placement = ResolvedPlacement(
        vpc_id="vpc-1",
        subnet_ids=("subnet-a", "subnet-b"),
        security_group_id="sg-1",
        instance_profile="DbbSoftEBInstanceRole",
        image_uri="123456789012.dkr.ecr.us-east-1.amazonaws.com/dbbsoftt-repo:1.2.3",
        version_label="1.2.3",
    )
    options = {
        (o["Namespace"], o["OptionName"]): o["Value"]
        for o in descriptor.compute_environment.option_settings(placement)
    }
    assert options[("aws:ec2:vpc", "Subnets")] == "subnet-a,subnet-b"
    assert options[("aws:autoscaling:launchconfiguration", "InstanceType")] == "t3.micro"
    assert options[("aws:autoscaling:launchconfiguration", "SecurityGroups")] == "sg-1"
    assert options[("aws:elasticbeanstalk:environment", "EnvironmentType")] == "SingleInstance"
    assert options[("aws:elasticbeanstalk:application:environment", "IMAGE_URI")] == placement.image_uri
    assert options[("aws:elasticbeanstalk:application:environment", "APP_VERSION")] == "1.2.3"


def test_to_dict(descriptor):
    data = descriptor.to_dict()
    assert data["version"] == "1.2.3"
    kinds = [r["kind"] for r in data["resources"]]
    assert kinds.count("compute_environment") == 1
