import threading

import pytest

from dbbsoft_deploy.applier import ConvergenceStatus, DeploymentApplier, ResourceAction
from dbbsoft_deploy.builder import DescriptorBuilder, build_descriptor
from dbbsoft_deploy.errors import ConfigurationError, ResourceConflictError, SubmissionError
from tests.fixtures.descriptor_fixtures import REGISTRY, RecordingProvisioner


def make_applier(provisioner) -> DeploymentApplier:
    return DeploymentApplier(provisioner, poll_interval=0.001)


def test_first_apply_creates_everything(provisioner, descriptor):
    result = make_applier(provisioner).apply(descriptor, timeout=1)

    assert len(result.created) == len(descriptor.resources)
    assert result.updated == []
    assert result.convergence == ConvergenceStatus.CONVERGED
    assert provisioner.calls_for("create")[-1] == descriptor.compute_environment.key


def test_creation_order_follows_dependencies(provisioner, descriptor):
    make_applier(provisioner).apply(descriptor, timeout=1)
    created = provisioner.calls_for("create")

    environment = created.index(descriptor.compute_environment.key)
    for ref in descriptor.compute_environment.references():
        assert created.index(ref.key) < environment


def test_second_apply_is_idempotent(provisioner, descriptor):
    applier = make_applier(provisioner)
    applier.apply(descriptor, timeout=1)
    provisioner.calls.clear()

    result = applier.apply(descriptor, timeout=1)

    assert provisioner.calls_for("create") == []
    assert provisioner.calls_for("update") == []
    assert len(result.unchanged) == len(descriptor.resources)


def test_new_version_only_adds_record_and_updates_environment(provisioner, deploy_settings, descriptor):
    applier = make_applier(provisioner)
    applier.apply(descriptor, timeout=1)
    provisioner.calls.clear()

    next_descriptor = DescriptorBuilder(deploy_settings).build("1.2.4")
    result = applier.apply(next_descriptor, timeout=1)

    assert sorted(result.created) == sorted([
        "image_artifact:dbbsoftt-repo:1.2.4",
        "deployment_record:1.2.4",
    ])
    assert result.updated == [next_descriptor.compute_environment.key]
    # the previous record is kept for rollback
    assert "deployment_record:1.2.3" in provisioner.state


def test_image_uri_is_resolved_from_repository(provisioner, descriptor):
    result = make_applier(provisioner).apply(descriptor, timeout=1)
    spec = provisioner.state[descriptor.compute_environment.key]["spec"]

    assert spec["placement"]["image_uri"] == f"{REGISTRY}/dbbsoftt-repo:1.2.3"
    assert spec["placement"]["security_group_id"] == "sg-DbbSoftWebSg"
    assert spec["placement"]["instance_profile"] == "DbbSoftEBInstanceRole"
    assert result.outputs_for(descriptor.compute_environment.key)["version_label"] == "1.2.3"


def test_missing_manifest_makes_no_api_calls(provisioner, deploy_settings, tmp_path):
    applier = make_applier(provisioner)
    with pytest.raises(ConfigurationError):
        applier.apply(build_descriptor(deploy_settings, tmp_path / "package.json"))
    assert provisioner.calls == []


def test_first_failure_aborts(provisioner, descriptor):
    role_key = "identity_role:DbbSoftEBInstanceRole"
    provisioner.fail_on = ("create", role_key)

    with pytest.raises(SubmissionError) as exc_info:
        make_applier(provisioner).apply(descriptor, timeout=1)

    assert exc_info.value.resource == role_key
    assert exc_info.value.operation == "create"
    assert provisioner.calls_for("create").count(role_key) == 1
    assert descriptor.compute_environment.key not in provisioner.calls_for("create")
    assert provisioner.calls_for("status") == []


def test_conflict_is_surfaced(provisioner, descriptor):
    provisioner.fail_on = ("create", "image_repository:dbbsoftt-repo")
    provisioner.error = ResourceConflictError("RepositoryAlreadyExistsException: taken")

    with pytest.raises(ResourceConflictError) as exc_info:
        make_applier(provisioner).apply(descriptor, timeout=1)
    assert exc_info.value.resource == "image_repository:dbbsoftt-repo"


def test_unexpected_errors_become_submission_errors(provisioner, descriptor):
    provisioner.fail_on = ("describe", "application:DbbSoft")
    provisioner.error = RuntimeError("connection reset")

    with pytest.raises(SubmissionError) as exc_info:
        make_applier(provisioner).apply(descriptor, timeout=1)
    assert exc_info.value.operation == "describe"
    assert "connection reset" in str(exc_info.value)


def test_waits_until_ready(descriptor):
    provisioner = RecordingProvisioner(statuses=[
        {"Status": "Launching", "Health": "Grey"},
        {"Status": "Updating", "Health": "Grey"},
        {"Status": "Ready", "Health": "Green"},
    ])
    result = make_applier(provisioner).apply(descriptor, timeout=5)

    assert result.convergence == ConvergenceStatus.CONVERGED
    assert len(provisioner.calls_for("status")) == 3


def test_timeout_reports_in_progress(descriptor):
    provisioner = RecordingProvisioner(statuses=[{"Status": "Launching", "Health": "Grey"}])
    result = make_applier(provisioner).apply(descriptor, timeout=0.05)

    assert result.convergence == ConvergenceStatus.IN_PROGRESS
    assert result.environment_status == {"Status": "Launching", "Health": "Grey"}
    assert len(result.created) == len(descriptor.resources)


def test_cancel_reports_in_progress(descriptor):
    provisioner = RecordingProvisioner(statuses=[{"Status": "Launching", "Health": "Grey"}])
    cancel = threading.Event()
    cancel.set()

    result = make_applier(provisioner).apply(descriptor, cancel_event=cancel)

    assert result.convergence == ConvergenceStatus.IN_PROGRESS
    assert len(provisioner.calls_for("status")) == 1


def test_red_health_is_degraded(descriptor):
    provisioner = RecordingProvisioner(statuses=[{"Status": "Ready", "Health": "Red"}])
    result = make_applier(provisioner).apply(descriptor, timeout=1)
    assert result.convergence == ConvergenceStatus.DEGRADED


def test_no_wait(provisioner, descriptor):
    result = make_applier(provisioner).apply(descriptor, wait=False)
    assert result.convergence == ConvergenceStatus.SKIPPED
    assert provisioner.calls_for("status") == []


def test_teardown_keeps_records_and_retained_repository(provisioner, descriptor):
    applier = make_applier(provisioner)
    applier.apply(descriptor, timeout=1)

    results = {r.key: r.action for r in applier.teardown(descriptor)}

    assert results[descriptor.compute_environment.key] == ResourceAction.DELETED
    assert results["security_group:DbbSoftWebSg"] == ResourceAction.DELETED
    assert results["identity_role:DbbSoftEBInstanceRole"] == ResourceAction.DELETED
    assert results["image_repository:dbbsoftt-repo"] == ResourceAction.RETAINED
    assert results["deployment_record:1.2.3"] == ResourceAction.RETAINED
    # dependents go first
    deleted = provisioner.calls_for("delete")
    assert deleted[0] == descriptor.compute_environment.key


def test_teardown_of_nothing(provisioner, descriptor):
    results = make_applier(provisioner).teardown(descriptor)
    assert {r.action for r in results} == {ResourceAction.ABSENT}
    assert provisioner.calls_for("delete") == []


def test_healthy_environment_on_previous_version_is_degraded(descriptor):
    provisioner = RecordingProvisioner(statuses=[{"Status": "Ready", "Health": "Green", "VersionLabel": "1.2.2"}])
    result = make_applier(provisioner).apply(descriptor, timeout=1)

    assert result.convergence == ConvergenceStatus.DEGRADED
    assert result.environment_status["VersionLabel"] == "1.2.2"


def test_healthy_environment_on_new_version_converges(descriptor):
    provisioner = RecordingProvisioner(statuses=[{"Status": "Ready", "Health": "Green", "VersionLabel": "1.2.3"}])
    result = make_applier(provisioner).apply(descriptor, timeout=1)
    assert result.convergence == ConvergenceStatus.CONVERGED


def test_yellow_health_is_degraded(descriptor):
    provisioner = RecordingProvisioner(statuses=[
        {"Status": "Ready", "Health": "Grey"},
        {"Status": "Ready", "Health": "Yellow"},
    ])
    result = make_applier(provisioner).apply(descriptor, timeout=5)

    assert result.convergence == ConvergenceStatus.DEGRADED
    assert len(provisioner.calls_for("status")) == 2
