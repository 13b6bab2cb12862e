"""
Deployment applier.

Submits a descriptor to a provisioner in dependency order, feeding the
outputs of each resource into its dependents, then waits for the compute
environment to converge.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from dbbsoft_deploy.descriptor import (
    ComputeEnvironment,
    Descriptor,
    ResolvedPlacement,
    Resource,
    ResourceKind,
)
from dbbsoft_deploy.errors import ConvergenceTimeout, DeployError, SubmissionError
from dbbsoft_deploy.graph import topological_order

logger = logging.getLogger(__name__)

Outputs = Dict[str, Any]


class Provisioner(ABC):
    """Operations the applier needs from a provisioning API."""

    @abstractmethod
    def describe(self, resource: Resource, inputs: Dict[str, Any]) -> Optional[Outputs]:
        """Observed state of the resource, or None if it does not exist."""

    @abstractmethod
    def create(self, resource: Resource, inputs: Dict[str, Any]) -> Outputs:
        """Create the resource and return its outputs."""

    @abstractmethod
    def needs_update(self, resource: Resource, inputs: Dict[str, Any], observed: Outputs) -> bool:
        """Whether the observed resource differs from the desired one."""

    @abstractmethod
    def update(self, resource: Resource, inputs: Dict[str, Any], observed: Outputs) -> Outputs:
        """Bring an existing resource in line with the desired one."""

    @abstractmethod
    def delete(self, resource: Resource, observed: Outputs) -> bool:
        """Delete the resource. Returns False when it is retained by policy."""

    @abstractmethod
    def environment_status(self, environment: ComputeEnvironment) -> Dict[str, Any]:
        """Current ``Status`` and ``Health`` of the compute environment."""


class ResourceAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    RETAINED = "retained"
    ABSENT = "absent"


class ConvergenceStatus(str, Enum):
    CONVERGED = "converged"
    # deployment in progress, status unknown
    IN_PROGRESS = "in_progress"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


@dataclass
class ResourceResult:
    key: str
    action: ResourceAction
    outputs: Outputs = field(default_factory=dict)


@dataclass
class ApplyResult:
    """What one apply did, resource by resource."""
    version: str
    resources: List[ResourceResult] = field(default_factory=list)
    convergence: ConvergenceStatus = ConvergenceStatus.SKIPPED
    environment_status: Dict[str, Any] = field(default_factory=dict)

    def keys_with(self, action: ResourceAction) -> List[str]:
        return [r.key for r in self.resources if r.action == action]

    @property
    def created(self) -> List[str]:
        return self.keys_with(ResourceAction.CREATED)

    @property
    def updated(self) -> List[str]:
        return self.keys_with(ResourceAction.UPDATED)

    @property
    def unchanged(self) -> List[str]:
        return self.keys_with(ResourceAction.UNCHANGED)

    def outputs_for(self, key: str) -> Outputs:
        for result in self.resources:
            if result.key == key:
                return result.outputs
        return {}

    def summary(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "convergence": self.convergence.value,
            "environment_status": self.environment_status,
        }


def resolve_inputs(resource: Resource, outputs: Dict[str, Outputs]) -> Dict[str, Any]:
    """Turn the outputs of a resource's dependencies into its provisioning inputs."""
    if resource.kind == ResourceKind.IMAGE_ARTIFACT:
        return {"repository_uri": outputs[resource.repository.key]["repository_uri"]}

    if resource.kind == ResourceKind.DEPLOYMENT_RECORD:
        return {"application_name": outputs[resource.application.key]["application_name"]}

    if resource.kind == ResourceKind.COMPUTE_ENVIRONMENT:
        network = outputs[resource.network_placement.key]
        image = outputs[resource.image.key]
        placement = ResolvedPlacement(
            vpc_id=network["vpc_id"],
            subnet_ids=tuple(network["subnet_ids"]),
            security_group_id=network["group_id"],
            instance_profile=outputs[resource.identity_binding.key]["instance_profile"],
            image_uri=image["image_uri"],
            version_label=outputs[resource.deployment_record.key]["version_label"],
        )
        return {
            "application_name": outputs[resource.application.key]["application_name"],
            "placement": placement,
        }

    return {}


class DeploymentApplier:
    """Applies a descriptor through a provisioner, one resource at a time."""

    def __init__(self, provisioner: Provisioner, poll_interval: float = 15.0,
                 clock: Callable[[], float] = time.monotonic):
        self.provisioner = provisioner
        self.poll_interval = poll_interval
        self.clock = clock

    def _submit(self, operation: str, resource: Resource, func: Callable, *args):
        try:
            return func(resource, *args)
        except DeployError as e:
            if e.resource is None:
                e.resource = resource.key
            if e.operation is None:
                e.operation = operation
            logger.error(f"{operation} {resource.key} failed: {e.message}")
            raise
        except Exception as e:
            logger.error(f"{operation} {resource.key} failed: {e}")
            raise SubmissionError(str(e), resource=resource.key, operation=operation) from e

    def apply(self, descriptor: Descriptor, timeout: Optional[float] = None,
              cancel_event: Optional[threading.Event] = None, wait: bool = True) -> ApplyResult:
        """Create or update every resource, then wait for convergence.

        Stops at the first failing resource and raises its error; resources
        already submitted are left as they are.
        """
        descriptor.validate_references()
        ordered = topological_order(descriptor.resources)
        result = ApplyResult(version=str(descriptor.version))
        outputs: Dict[str, Outputs] = {}

        logger.info(f"Applying {len(ordered)} resources for version {descriptor.version}")
        for resource in ordered:
            inputs = resolve_inputs(resource, outputs)
            observed = self._submit("describe", resource, self.provisioner.describe, inputs)

            if observed is None:
                produced = self._submit("create", resource, self.provisioner.create, inputs)
                action = ResourceAction.CREATED
            elif self._submit("compare", resource, self.provisioner.needs_update, inputs, observed):
                produced = self._submit("update", resource, self.provisioner.update, inputs, observed)
                action = ResourceAction.UPDATED
            else:
                produced = observed
                action = ResourceAction.UNCHANGED

            logger.info(f"{resource.key}: {action.value}")
            outputs[resource.key] = produced
            result.resources.append(ResourceResult(key=resource.key, action=action, outputs=produced))

        if not wait:
            return result

        environment = descriptor.compute_environment
        try:
            status = self.wait_for_convergence(environment, timeout=timeout, cancel_event=cancel_event)
        except ConvergenceTimeout as e:
            logger.warning(f"Deployment in progress, status unknown: {e}")
            result.convergence = ConvergenceStatus.IN_PROGRESS
            result.environment_status = e.last_status
            return result

        result.environment_status = status
        running = status.get("VersionLabel", result.version)
        if running != result.version:
            # EB rolled back a failed deployment
            logger.warning(f"Environment {environment.name} is running {running}, not {result.version}")
            result.convergence = ConvergenceStatus.DEGRADED
        elif status.get("Health") == "Green":
            result.convergence = ConvergenceStatus.CONVERGED
        else:
            result.convergence = ConvergenceStatus.DEGRADED
        logger.info(f"Environment {environment.name}: {result.convergence.value} ({status})")
        return result

    def wait_for_convergence(self, environment: ComputeEnvironment, timeout: Optional[float] = None,
                             cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """Poll the environment until it is Ready.

        Returns the last status once the environment is Ready with a known
        health (Green, Yellow or Red); Grey means health is still unknown.
        Raises ConvergenceTimeout when the timeout passes or the wait is
        cancelled first.
        """
        cancel_event = cancel_event or threading.Event()
        deadline = None if timeout is None else self.clock() + timeout
        status: Dict[str, Any] = {}

        while True:
            status = self._submit("wait", environment, self.provisioner.environment_status)
            logger.info(f"Environment {environment.name}: status={status.get('Status')} "
                        f"health={status.get('Health')}")
            if status.get("Status") == "Ready" and status.get("Health") in ("Green", "Yellow", "Red"):
                return status
            if status.get("Status") == "Terminated":
                return status

            if deadline is None:
                remaining = self.poll_interval
            else:
                remaining = deadline - self.clock()
                if remaining <= 0:
                    raise ConvergenceTimeout(
                        f"not converged after {timeout}s", resource=environment.key, last_status=status
                    )
            if cancel_event.wait(min(self.poll_interval, remaining)):
                raise ConvergenceTimeout("wait cancelled", resource=environment.key, last_status=status)

    def teardown(self, descriptor: Descriptor) -> List[ResourceResult]:
        """Delete resources in reverse creation order.

        Deployment records are always kept; the image repository is kept
        unless its retention policy is ``destroy``.
        """
        ordered = topological_order(descriptor.resources)
        outputs: Dict[str, Outputs] = {}
        observed_by_key: Dict[str, Optional[Outputs]] = {}

        # describe forward so that dependents get resolved inputs
        for resource in ordered:
            try:
                inputs = resolve_inputs(resource, outputs)
            except KeyError:
                inputs = {}
            observed = self._submit("describe", resource, self.provisioner.describe, inputs)
            observed_by_key[resource.key] = observed
            if observed is not None:
                outputs[resource.key] = observed

        results = []
        for resource in reversed(ordered):
            observed = observed_by_key[resource.key]
            if observed is None:
                results.append(ResourceResult(key=resource.key, action=ResourceAction.ABSENT))
                continue
            deleted = self._submit("delete", resource, self.provisioner.delete, observed)
            action = ResourceAction.DELETED if deleted else ResourceAction.RETAINED
            logger.info(f"{resource.key}: {action.value}")
            results.append(ResourceResult(key=resource.key, action=action, outputs=observed))
        return results
