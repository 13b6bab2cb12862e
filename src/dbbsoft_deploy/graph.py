"""Creation order for descriptor resources."""
from collections import deque
from typing import Dict, Iterable, List

from dbbsoft_deploy.descriptor import Resource
from dbbsoft_deploy.errors import ConfigurationError


def topological_order(resources: Iterable[Resource]) -> List[Resource]:
    """Order resources so that every dependency comes before its dependents.

    Kahn's algorithm; among resources that are ready at the same time the
    input order is kept, so the result is deterministic.

    Args:
        resources: Resources of a descriptor, in any order

    Returns:
        The same resources in creation order

    Raises:
        ConfigurationError: On an unknown dependency or a dependency cycle
    """
    resources = list(resources)
    position: Dict[str, int] = {}
    for index, resource in enumerate(resources):
        if resource.key in position:
            raise ConfigurationError("duplicate resource", resource=resource.key, operation="order")
        position[resource.key] = index

    indegree = {resource.key: 0 for resource in resources}
    dependents: Dict[str, List[str]] = {resource.key: [] for resource in resources}
    for resource in resources:
        for dependency in resource.depends_on():
            if dependency not in position:
                raise ConfigurationError(
                    f"depends on unknown resource {dependency}",
                    resource=resource.key,
                    operation="order",
                )
            indegree[resource.key] += 1
            dependents[dependency].append(resource.key)

    ready = deque(r.key for r in resources if indegree[r.key] == 0)
    ordered: List[Resource] = []
    while ready:
        key = ready.popleft()
        ordered.append(resources[position[key]])
        released = []
        for dependent in dependents[key]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                released.append(dependent)
        # keep input order among newly released nodes
        ready.extend(sorted(released, key=position.__getitem__))

    if len(ordered) != len(resources):
        stuck = sorted(key for key, degree in indegree.items() if degree > 0)
        raise ConfigurationError(f"dependency cycle between {', '.join(stuck)}", operation="order")

    return ordered
