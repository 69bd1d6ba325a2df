"""
Security Policy Ordering

SecurityContextConstraints are ordered by restrictiveness. The order is an
explicit list of names, most restrictive first; comparisons are index lookups
into that list, never string or enum comparisons.
"""

import logging
from typing import Any, Dict, List, Sequence

from kubernetes.client.rest import ApiException

from ..core.constants import KubernetesConstants
from ..core.exceptions import NotFoundError
from ..core.utils import handle_api_error, is_not_found

logger = logging.getLogger(__name__)


class PolicyPriorityList:
    """Total order over named security policies, most restrictive first"""

    def __init__(self, names: Sequence[str]):
        self.names = list(names)
        self._index = {}
        for position, name in enumerate(self.names):
            # first occurrence wins if a name is repeated
            self._index.setdefault(name, position)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self.names)

    def index_of(self, name: str) -> int:
        """
        Position of a policy in the ordering

        Raises:
            NotFoundError: If the policy is not part of the ordering
        """
        try:
            return self._index[name]
        except KeyError:
            raise NotFoundError(f"SCC {name} not found in the prioritized SCC list")

    def is_at_least_as_restrictive(self, policy_a: str, policy_b: str) -> bool:
        """True if policy_a is at least as restrictive as policy_b"""
        return self.index_of(policy_a) <= self.index_of(policy_b)


# Restriction points: the more a policy allows, the higher its score
PRIVILEGED_POINTS = 1000000
HOST_VOLUME_POINTS = 200000
NON_TRIVIAL_VOLUME_POINTS = 50000
RUN_AS_ANY_USER_POINTS = 40000
RUN_AS_NON_ROOT_POINTS = 30000
RUN_AS_RANGE_POINTS = 20000
RUN_AS_USER_POINTS = 10000
CAP_DEFAULT_POINTS = 5000
CAP_ADD_ONE_POINTS = 300
CAP_ALLOW_ALL_POINTS = 4000
CAP_DROP_ONE_POINTS = 100

TRIVIAL_VOLUMES = {"configMap", "downwardAPI", "emptyDir", "projected", "secret", "none"}
HOST_VOLUMES = {"hostPath", "*"}

RUN_AS_USER_POINTS_BY_TYPE = {
    "RunAsAny": RUN_AS_ANY_USER_POINTS,
    "MustRunAsNonRoot": RUN_AS_NON_ROOT_POINTS,
    "MustRunAsRange": RUN_AS_RANGE_POINTS,
    "MustRunAs": RUN_AS_USER_POINTS,
}


def _volume_points(volumes: List[str]) -> int:
    if any(volume in HOST_VOLUMES for volume in volumes):
        return HOST_VOLUME_POINTS
    if any(volume not in TRIVIAL_VOLUMES for volume in volumes):
        return NON_TRIVIAL_VOLUME_POINTS
    return 0


def _capability_points(scc: Dict[str, Any]) -> int:
    points = CAP_DEFAULT_POINTS
    points += CAP_ADD_ONE_POINTS * len(scc.get('defaultAddCapabilities') or [])
    allowed = scc.get('allowedCapabilities') or []
    if "*" in allowed or "ALL" in allowed:
        points += CAP_ALLOW_ALL_POINTS
    else:
        points += CAP_ADD_ONE_POINTS * len(allowed)
    points -= CAP_DROP_ONE_POINTS * len(scc.get('requiredDropCapabilities') or [])
    return points


def restriction_points(scc: Dict[str, Any]) -> int:
    """
    Score how permissive a SecurityContextConstraints object is.

    Args:
        scc: SCC object as returned by the custom objects API

    Returns:
        int: lower means more restrictive
    """
    points = 0
    if scc.get('allowPrivilegedContainer'):
        points += PRIVILEGED_POINTS
    points += _volume_points(scc.get('volumes') or [])
    run_as_user = (scc.get('runAsUser') or {}).get('type', '')
    points += RUN_AS_USER_POINTS_BY_TYPE.get(run_as_user, 0)
    points += _capability_points(scc)
    return points


def order_by_restrictiveness(sccs: List[Dict[str, Any]]) -> PolicyPriorityList:
    """Sort SCC objects most restrictive first, name as tie-breaker"""
    ranked = sorted(
        sccs,
        key=lambda scc: (restriction_points(scc), scc.get('metadata', {}).get('name', '')),
    )
    return PolicyPriorityList([scc['metadata']['name'] for scc in ranked])


class SecurityPolicyService:
    """Existence checks and ordering for SCCs on the cluster"""

    def __init__(self, custom_api):
        """
        Args:
            custom_api: Kubernetes CustomObjectsApi client
        """
        self.custom_api = custom_api

    def verify_exists(self, name: str) -> None:
        """
        Raises:
            NotFoundError: If the SCC does not exist
        """
        try:
            self.custom_api.get_cluster_custom_object(
                group=KubernetesConstants.SECURITY_API_GROUP,
                version=KubernetesConstants.SECURITY_API_VERSION,
                plural=str(KubernetesConstants.ResourceName.SECURITY_CONTEXT_CONSTRAINTS),
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                raise NotFoundError(f"SCC {name} not found")
            handle_api_error(e, f"failed to get SCC {name}")

    def prioritized_list(self) -> PolicyPriorityList:
        """Build the restrictiveness ordering from every SCC on the cluster"""
        try:
            response = self.custom_api.list_cluster_custom_object(
                group=KubernetesConstants.SECURITY_API_GROUP,
                version=KubernetesConstants.SECURITY_API_VERSION,
                plural=str(KubernetesConstants.ResourceName.SECURITY_CONTEXT_CONSTRAINTS),
            )
        except ApiException as e:
            handle_api_error(e, "failed to list SCCs")

        ordering = order_by_restrictiveness(response.get('items', []))
        logger.debug(f"Prioritized SCC list: {ordering.names}")
        return ordering
