"""
Namespace Selection

Classifies every namespace into "needs RBAC work" and "needs trust-bundle
work". The two lists use separate predicates and separate version labels so
the two features can fail and retry independently.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List

from kubernetes.client.rest import ApiException

from ..core.constants import KubernetesConstants, LabelKeys, ResourceNames
from ..core.utils import handle_api_error, is_not_found

logger = logging.getLogger(__name__)

RESERVED_NAMESPACE_REGEX = re.compile(KubernetesConstants.NAMESPACE_IGNORE_PATTERN)


@dataclass
class NamespacesToReconcile:
    """Namespaces that need reconciliation, per feature"""
    rbac: List = field(default_factory=list)
    trust_bundle: List = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.rbac and not self.trust_bundle


def is_reserved(name: str) -> bool:
    return bool(RESERVED_NAMESPACE_REGEX.match(name))


def requested_scc(namespace) -> str:
    return (namespace.metadata.annotations or {}).get(LabelKeys.NAMESPACE_SCC_ANNOTATION, "")


class NamespaceSelector:
    """Builds the per-pass work lists"""

    def __init__(self, core_api, rbac_api, legacy_rbac: bool = True):
        """
        Args:
            core_api: Kubernetes CoreV1Api client
            rbac_api: Kubernetes RbacAuthorizationV1Api client
            legacy_rbac: whether the legacy edit binding should exist
        """
        self.core_api = core_api
        self.rbac_api = rbac_api
        self.legacy_rbac = legacy_rbac

    def list_namespaces(self) -> List:
        try:
            return self.core_api.list_namespace().items
        except ApiException as e:
            handle_api_error(e, "failed to list namespaces")

    def select(self, version: str, namespaces: List = None) -> NamespacesToReconcile:
        """
        Classify namespaces for this pass.

        Args:
            version: target release version
            namespaces: namespace objects; listed from the cluster when omitted

        Returns:
            NamespacesToReconcile
        """
        if namespaces is None:
            namespaces = self.list_namespaces()

        result = NamespacesToReconcile()
        for ns in namespaces:
            name = ns.metadata.name

            if is_reserved(name):
                logger.debug(f"Ignoring system namespace: {name}")
                continue

            if ns.metadata.deletion_timestamp is not None:
                logger.debug(f"Ignoring namespace being deleted: {name}")
                continue

            if self.needs_rbac(ns, version):
                logger.debug(f"Adding namespace for RBAC reconciliation: {name}")
                result.rbac.append(ns)

            if self.needs_trust_bundle(ns, version):
                logger.debug(f"Adding namespace for CA bundle reconciliation: {name}")
                result.trust_bundle.append(ns)

        return result

    def needs_rbac(self, ns, version: str) -> bool:
        # Namespaces requesting an SCC are always re-checked: the grant can
        # change without a version bump.
        if requested_scc(ns):
            return True

        labels = ns.metadata.labels or {}
        if labels.get(LabelKeys.NAMESPACE_VERSION) != version:
            return True

        # Labelled as done; make sure the default SCC binding is really there
        name = ns.metadata.name
        try:
            binding = self.rbac_api.read_namespaced_role_binding(ResourceNames.SCC_ROLE_BINDING, name)
        except ApiException as e:
            if is_not_found(e):
                logger.debug(f"could not find roleBinding {ResourceNames.SCC_ROLE_BINDING} in namespace {name}")
                return True
            handle_api_error(e, f"error fetching rolebinding {ResourceNames.SCC_ROLE_BINDING} from namespace {name}")

        if binding.role_ref.kind != str(KubernetesConstants.RoleKind.CLUSTER_ROLE):
            logger.info(f"RoleBinding {ResourceNames.SCC_ROLE_BINDING} in namespace: {name} should reference "
                        f"the ClusterRole with default SCC, will reconcile again...")
            return True

        if self.has_legacy_binding(name) != self.legacy_rbac:
            logger.info(f"RoleBinding {ResourceNames.LEGACY_ROLE_BINDING} in namespace: {name} does not match "
                        f"legacyPipelineRbac={self.legacy_rbac}, will reconcile again...")
            return True
        return False

    def has_legacy_binding(self, namespace: str) -> bool:
        try:
            self.rbac_api.read_namespaced_role_binding(ResourceNames.LEGACY_ROLE_BINDING, namespace)
        except ApiException as e:
            if is_not_found(e):
                return False
            handle_api_error(e, f"error fetching rolebinding {ResourceNames.LEGACY_ROLE_BINDING} "
                                f"from namespace {namespace}")
        return True

    @staticmethod
    def needs_trust_bundle(ns, version: str) -> bool:
        labels = ns.metadata.labels or {}
        return labels.get(LabelKeys.NAMESPACE_TRUSTED_CONFIG_VERSION) != version
