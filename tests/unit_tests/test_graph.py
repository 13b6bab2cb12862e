import random
from typing import ClassVar, List, Tuple

import pytest

from dbbsoft_deploy.descriptor import Resource, ResourceKind, ResourceRef
from dbbsoft_deploy.errors import ConfigurationError
from dbbsoft_deploy.graph import topological_order


class Node(Resource):
    kind: ClassVar[ResourceKind] = ResourceKind.SECURITY_GROUP

    needs: Tuple[str, ...] = ()

    def references(self) -> List[ResourceRef]:
        return [ResourceRef(kind=self.kind, name=name) for name in self.needs]


def test_dependencies_come_before_compute_environment(descriptor):
    resources = list(descriptor.resources)
    for seed in range(10):
        random.Random(seed).shuffle(resources)
        ordered = [r.kind for r in topological_order(resources)]
        environment_index = ordered.index(ResourceKind.COMPUTE_ENVIRONMENT)
        for kind in (ResourceKind.IDENTITY_ROLE, ResourceKind.SECURITY_GROUP, ResourceKind.IMAGE_REPOSITORY):
            assert ordered.index(kind) < environment_index
        assert ordered.index(ResourceKind.APPLICATION) < ordered.index(ResourceKind.DEPLOYMENT_RECORD)
        assert ordered.index(ResourceKind.IMAGE_REPOSITORY) < ordered.index(ResourceKind.IMAGE_ARTIFACT)
        assert environment_index == len(ordered) - 1


def test_input_order_is_kept_among_independent_resources():
    nodes = [Node(name="c"), Node(name="a"), Node(name="b")]
    assert [n.name for n in topological_order(nodes)] == ["c", "a", "b"]


def test_chain():
    nodes = [Node(name="top", needs=("mid",)), Node(name="mid", needs=("base",)), Node(name="base")]
    assert [n.name for n in topological_order(nodes)] == ["base", "mid", "top"]


def test_cycle_is_rejected():
    nodes = [Node(name="a", needs=("b",)), Node(name="b", needs=("a",)), Node(name="c")]
    with pytest.raises(ConfigurationError) as exc_info:
        topological_order(nodes)
    assert "cycle" in str(exc_info.value)


def test_unknown_dependency_is_rejected():
    with pytest.raises(ConfigurationError) as exc_info:
        topological_order([Node(name="a", needs=("ghost",))])
    assert exc_info.value.resource == "security_group:a"


def test_duplicate_resource_is_rejected():
    with pytest.raises(ConfigurationError):
        topological_order([Node(name="a"), Node(name="a")])
