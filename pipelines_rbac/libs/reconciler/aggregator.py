"""
Cluster Binding Aggregation

Maintains the single ``openshift-pipelines-clusterinterceptors`` cluster role
binding whose subjects are the pipeline service accounts of every namespace
at the target version. Membership is maintained incrementally: departures are
pruned, additions are merged, nothing is rebuilt from scratch.
"""

import logging
from typing import List

from kubernetes.client import (
    V1ClusterRole,
    V1ClusterRoleBinding,
    V1ObjectMeta,
    V1OwnerReference,
    V1PolicyRule,
    V1RoleRef,
)
from kubernetes.client.rest import ApiException

from ..core.constants import KubernetesConstants, LabelKeys, ResourceNames
from ..core.objects import compare_subjects, merge_subjects, service_account_subject, update_owner_references
from ..core.utils import is_not_found
from .cache import ClusterRoleBindingLister, NamespaceLister
from .namespace import NamespaceServiceAccount

logger = logging.getLogger(__name__)

NAME = ResourceNames.CLUSTER_INTERCEPTORS


class ClusterBindingAggregator:
    """Keeps the visibility binding's subjects in line with namespace state"""

    def __init__(self, rbac_api, namespace_lister: NamespaceLister,
                 binding_lister: ClusterRoleBindingLister, version: str,
                 owner_ref: V1OwnerReference):
        """
        Args:
            rbac_api: Kubernetes RbacAuthorizationV1Api client, used for every write
            namespace_lister: cached namespace reads
            binding_lister: cached cluster role binding reads
            version: target release version
            owner_ref: reference to the current bookkeeping object
        """
        self.rbac_api = rbac_api
        self.namespace_lister = namespace_lister
        self.binding_lister = binding_lister
        self.version = version
        self.owner_ref = owner_ref

    def prune_stale_subjects(self) -> int:
        """
        Remove subjects whose namespace is no longer at the target version.

        Returns:
            int: number of subjects removed
        """
        binding = self.binding_lister.get(NAME)
        if binding is None:
            return 0

        current = self.namespace_lister.names_with_label(LabelKeys.NAMESPACE_VERSION, self.version)
        subjects = list(binding.subjects or [])
        index = 0
        removed = 0
        while index < len(subjects):
            if subjects[index].namespace not in current:
                subjects.pop(index)
                removed += 1
            else:
                index += 1

        if not removed:
            return 0

        binding.subjects = subjects
        self.rbac_api.replace_cluster_role_binding(NAME, binding)
        self.binding_lister.cache.invalidate()
        logger.info(f"successfully removed {removed} namespace(s) and updated {NAME}")
        return removed

    def aggregate(self, reconciled: List[NamespaceServiceAccount]) -> None:
        """
        Merge the reconciled service accounts into the binding.

        Safe to call with a partial list: members added by earlier passes are kept.
        """
        self.ensure_cluster_role()

        subjects = []
        for entry in reconciled:
            sa = entry.service_account
            logger.debug(f"Processing Subject for ServiceAccount {sa.metadata.name} "
                         f"in Namespace {entry.namespace.metadata.name}")
            subjects.append(service_account_subject(sa.metadata.name, sa.metadata.namespace))

        logger.info(f"finding cluster-role-binding {NAME}")
        try:
            binding = self.rbac_api.read_cluster_role_binding(NAME)
        except ApiException as e:
            if not is_not_found(e):
                raise
            logger.info(f"could not find clusterrolebinding {NAME}, proceeding to create")
            self._create_binding(subjects)
            return

        self._update_binding(binding, subjects)

    def ensure_cluster_role(self) -> None:
        logger.info(f"finding cluster-role {NAME}")
        try:
            self.rbac_api.read_cluster_role(NAME)
            return
        except ApiException as e:
            if not is_not_found(e):
                raise

        logger.info(f"create new clusterrole {NAME}")
        cluster_role = V1ClusterRole(
            metadata=V1ObjectMeta(name=NAME, owner_references=[self.owner_ref]),
            rules=[V1PolicyRule(
                api_groups=[KubernetesConstants.TRIGGERS_API_GROUP],
                resources=[str(KubernetesConstants.ResourceName.CLUSTER_INTERCEPTORS)],
                verbs=KubernetesConstants.RBACVerb.get_read_verbs(),
            )],
        )
        self.rbac_api.create_cluster_role(cluster_role)

    def _create_binding(self, subjects) -> None:
        binding = V1ClusterRoleBinding(
            metadata=V1ObjectMeta(name=NAME, owner_references=[self.owner_ref]),
            role_ref=V1RoleRef(
                api_group=KubernetesConstants.RBAC_API_GROUP,
                kind=str(KubernetesConstants.RoleKind.CLUSTER_ROLE),
                name=NAME,
            ),
            subjects=merge_subjects([], subjects),
        )
        self.rbac_api.create_cluster_role_binding(binding)
        self.binding_lister.cache.invalidate()

    def _update_binding(self, binding: V1ClusterRoleBinding, subjects) -> None:
        changed = False

        if not compare_subjects(binding.subjects, subjects):
            merged = merge_subjects(binding.subjects, subjects)
            if len(merged) != len(binding.subjects or []):
                binding.subjects = merged
                changed = True

        owner_refs = update_owner_references(binding.metadata.owner_references, self.owner_ref)
        if owner_refs != (binding.metadata.owner_references or []):
            binding.metadata.owner_references = owner_refs
            changed = True

        if not changed:
            logger.info("clusterrolebinding is up to date, action: none")
            return

        logger.info(f"update existing clusterrolebinding {NAME}")
        self.rbac_api.replace_cluster_role_binding(NAME, binding)
        self.binding_lister.cache.invalidate()
        logger.info(f"successfully updated {NAME}")
