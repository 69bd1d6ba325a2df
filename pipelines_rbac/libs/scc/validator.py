"""
Policy Ceiling Validation

Checks the configured default SCC and the optional maxAllowed ceiling once
per pass, and keeps the shared SCC ClusterRole in line with the default.
"""

import logging

from kubernetes.client import V1ClusterRole, V1ObjectMeta, V1OwnerReference, V1PolicyRule
from kubernetes.client.rest import ApiException

from ..core.constants import KubernetesConstants, ResourceNames
from ..core.exceptions import ConfigurationError, PolicyViolationError
from ..core.utils import is_not_found
from .priority import PolicyPriorityList, SecurityPolicyService

logger = logging.getLogger(__name__)


def scc_use_rule(scc: str) -> V1PolicyRule:
    """Single rule granting "use" of exactly one SCC"""
    return V1PolicyRule(
        api_groups=[KubernetesConstants.SECURITY_API_GROUP],
        resource_names=[scc],
        resources=[str(KubernetesConstants.ResourceName.SECURITY_CONTEXT_CONSTRAINTS)],
        verbs=[str(KubernetesConstants.RBACVerb.USE)],
    )


class PolicyCeilingValidator:
    """Validates default/maxAllowed SCC settings against the cluster"""

    def __init__(self, policy_service: SecurityPolicyService, rbac_api):
        """
        Args:
            policy_service: SCC existence and ordering service
            rbac_api: Kubernetes RbacAuthorizationV1Api client
        """
        self.policy_service = policy_service
        self.rbac_api = rbac_api

    def validate(self, default_scc: str, max_allowed_scc: str = "") -> PolicyPriorityList:
        """
        Verify the default SCC and the ceiling.

        Args:
            default_scc: SCC granted to namespaces that request none
            max_allowed_scc: least restrictive SCC a namespace may request ("" for no ceiling)

        Returns:
            PolicyPriorityList: the ordering used, reused for per-namespace checks

        Raises:
            ConfigurationError: If default_scc is empty
            NotFoundError: If either SCC does not exist
            PolicyViolationError: If the ceiling is more restrictive than the default
        """
        if not default_scc:
            raise ConfigurationError("default SCC cannot be empty")

        logger.info(f"default SCC set to: {default_scc}")
        self.policy_service.verify_exists(default_scc)
        priority_list = self.policy_service.prioritized_list()

        if not max_allowed_scc:
            logger.info("No maxAllowed SCC set")
            return priority_list

        self.policy_service.verify_exists(max_allowed_scc)
        allowed = priority_list.is_at_least_as_restrictive(default_scc, max_allowed_scc)
        logger.info(f"Is maxAllowed SCC: {max_allowed_scc} less restrictive than default SCC: {default_scc}? {allowed}")
        if not allowed:
            raise PolicyViolationError(
                f"maxAllowed SCC: {max_allowed_scc} must be less restrictive than the default SCC: {default_scc}"
            )
        logger.info(f"maxAllowed SCC set to: {max_allowed_scc}")
        return priority_list

    def ensure_cluster_policy_grant(self, default_scc: str, owner_ref: V1OwnerReference) -> None:
        """
        Create or update the shared SCC ClusterRole so it grants the default SCC.

        Runs on every pass, whether or not any namespace needs work.
        """
        cluster_role = V1ClusterRole(
            metadata=V1ObjectMeta(
                name=ResourceNames.SCC_CLUSTER_ROLE,
                owner_references=[owner_ref],
            ),
            rules=[scc_use_rule(default_scc)],
        )

        logger.info(f"finding cluster role: {ResourceNames.SCC_CLUSTER_ROLE}")
        try:
            existing = self.rbac_api.read_cluster_role(ResourceNames.SCC_CLUSTER_ROLE)
        except ApiException as e:
            if not is_not_found(e):
                raise
            logger.info(f"creating cluster role: {ResourceNames.SCC_CLUSTER_ROLE}")
            self.rbac_api.create_cluster_role(cluster_role)
            return

        if existing.rules == cluster_role.rules and existing.metadata.owner_references == [owner_ref]:
            logger.debug(f"cluster role {ResourceNames.SCC_CLUSTER_ROLE} is up to date")
            return

        existing.rules = cluster_role.rules
        existing.metadata.owner_references = [owner_ref]
        logger.info(f"updating cluster role: {ResourceNames.SCC_CLUSTER_ROLE}")
        self.rbac_api.replace_cluster_role(ResourceNames.SCC_CLUSTER_ROLE, existing)
