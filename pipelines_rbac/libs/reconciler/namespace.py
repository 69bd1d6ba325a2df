"""
Per-Namespace Reconciliation

Ensures, for one namespace: the ``pipeline`` service account, the SCC grant
(shared ClusterRole or a per-namespace Role), the SCC role binding, and the
legacy ``openshift-pipelines-edit`` binding according to its toggle.

Every step's failure is wrapped in NamespaceReconcileError so the caller can
skip the namespace and continue the batch.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from kubernetes.client import (
    CoreV1Event,
    V1ObjectMeta,
    V1ObjectReference,
    V1OwnerReference,
    V1Role,
    V1RoleBinding,
    V1RoleRef,
    V1ServiceAccount,
)
from kubernetes.client.rest import ApiException

from ..core.config import ReconcilerSettings
from ..core.constants import EventConstants, KubernetesConstants, LabelKeys, ResourceNames
from ..core.exceptions import NamespaceReconcileError, NotFoundError, PolicyViolationError, RBACReconcilerError
from ..core.objects import has_subject, service_account_subject, update_owner_references
from ..core.utils import is_already_exists, is_not_found
from ..scc.priority import PolicyPriorityList, SecurityPolicyService
from ..scc.validator import scc_use_rule
from .selector import requested_scc

logger = logging.getLogger(__name__)

ROLE = str(KubernetesConstants.RoleKind.ROLE)
CLUSTER_ROLE = str(KubernetesConstants.RoleKind.CLUSTER_ROLE)


@dataclass
class NamespaceServiceAccount:
    """A successfully reconciled namespace and its workload identity"""
    service_account: V1ServiceAccount
    namespace: object


def role_ref(kind: str, name: str) -> V1RoleRef:
    return V1RoleRef(api_group=KubernetesConstants.RBAC_API_GROUP, kind=kind, name=name)


def scc_role_ref_for(ns) -> V1RoleRef:
    """Per-namespace Role when an SCC is requested, the shared ClusterRole otherwise"""
    if requested_scc(ns):
        return role_ref(ROLE, ResourceNames.SCC_ROLE)
    return role_ref(CLUSTER_ROLE, ResourceNames.SCC_CLUSTER_ROLE)


class PerNamespaceReconciler:
    """Reconciles RBAC for one namespace at a time"""

    def __init__(self, core_api, rbac_api, policy_service: SecurityPolicyService,
                 settings: ReconcilerSettings, owner_ref: V1OwnerReference,
                 priority_list: Optional[PolicyPriorityList] = None):
        """
        Args:
            core_api: Kubernetes CoreV1Api client
            rbac_api: Kubernetes RbacAuthorizationV1Api client
            policy_service: SCC existence service
            settings: reconciler settings (ceiling, legacy toggle)
            owner_ref: reference to the current bookkeeping object
            priority_list: SCC ordering; required when a ceiling is set
        """
        self.core_api = core_api
        self.rbac_api = rbac_api
        self.policy_service = policy_service
        self.settings = settings
        self.owner_ref = owner_ref
        self.priority_list = priority_list

    def reconcile(self, ns) -> NamespaceServiceAccount:
        """
        Run all steps for one namespace.

        Raises:
            NamespaceReconcileError: on the first failing step
        """
        name = ns.metadata.name
        logger.info(f"Processing RBAC for namespace {name}")

        sa = self._step(name, "failed to ensure ServiceAccount", self.ensure_service_account, name)
        self._step(name, "failed to handle SCC", self.handle_scc, ns)
        self._step(name, "failed to ensure pipelines SCC role binding",
                   self.ensure_scc_role_binding, sa, scc_role_ref_for(ns))
        self._step(name, "failed to ensure role bindings", self.ensure_legacy_role_binding, sa)

        return NamespaceServiceAccount(service_account=sa, namespace=ns)

    @staticmethod
    def _step(namespace: str, message: str, func: Callable, *args):
        try:
            return func(*args)
        except (ApiException, RBACReconcilerError) as e:
            raise NamespaceReconcileError(namespace, f"{message}: {e}", e) from e

    # Workload identity

    def ensure_service_account(self, namespace: str) -> V1ServiceAccount:
        sa_name = ResourceNames.PIPELINE_SERVICE_ACCOUNT
        logger.info(f"finding sa: {namespace}/{sa_name}")
        try:
            sa = self.core_api.read_namespaced_service_account(sa_name, namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
            return self._create_service_account(namespace)

        if sa.metadata.owner_references == [self.owner_ref]:
            return sa

        sa.metadata.owner_references = [self.owner_ref]
        return self.core_api.replace_namespaced_service_account(sa_name, namespace, sa)

    def _create_service_account(self, namespace: str) -> V1ServiceAccount:
        sa_name = ResourceNames.PIPELINE_SERVICE_ACCOUNT
        logger.info(f"creating sa {sa_name} in namespace {namespace}")
        sa = V1ServiceAccount(
            metadata=V1ObjectMeta(name=sa_name, namespace=namespace, owner_references=[self.owner_ref])
        )
        try:
            return self.core_api.create_namespaced_service_account(namespace, sa)
        except ApiException as e:
            if not is_already_exists(e):
                raise
            logger.debug(f"sa {namespace}/{sa_name} already created")
            return self.core_api.read_namespaced_service_account(sa_name, namespace)

    # SCC grant

    def handle_scc(self, ns) -> None:
        """
        Resolve which SCC grant applies and prepare the per-namespace Role.

        Raises:
            NotFoundError: If the requested SCC does not exist (a Warning event is recorded)
            PolicyViolationError: If the requested SCC is less restrictive than maxAllowed
        """
        name = ns.metadata.name
        scc = requested_scc(ns)

        if not scc:
            # Binding goes to the ClusterRole; drop a Role left from an earlier request
            try:
                self.rbac_api.read_namespaced_role(ResourceNames.SCC_ROLE, name)
            except ApiException as e:
                if is_not_found(e):
                    return
                raise
            logger.info(f"Found leftover role: {ResourceNames.SCC_ROLE} in namespace: {name}, deleting...")
            try:
                self.rbac_api.delete_namespaced_role(ResourceNames.SCC_ROLE, name)
            except ApiException as e:
                if not is_not_found(e):
                    raise
            return

        logger.info(f"Namespace: {name} has requested SCC: {scc}")
        try:
            self.policy_service.verify_exists(scc)
        except NotFoundError as e:
            logger.error(str(e))
            self.record_scc_not_found_event(name, scc)
            raise

        max_allowed = self.settings.max_allowed_scc
        if max_allowed:
            if self.priority_list is None:
                self.priority_list = self.policy_service.prioritized_list()
            allowed = self.priority_list.is_at_least_as_restrictive(scc, max_allowed)
            logger.info(f"Is maxAllowed SCC: {max_allowed} less restrictive than namespace SCC: {scc}? {allowed}")
            if not allowed:
                raise PolicyViolationError(
                    f"namespace: {name} has requested SCC: {scc}, but it is less restrictive "
                    f"than the 'maxAllowed' SCC: {max_allowed}"
                )

        self.ensure_scc_role(name, scc)

    def ensure_scc_role(self, namespace: str, scc: str) -> None:
        desired = V1Role(
            metadata=V1ObjectMeta(
                name=ResourceNames.SCC_ROLE,
                namespace=namespace,
                owner_references=[self.owner_ref],
            ),
            rules=[scc_use_rule(scc)],
        )

        logger.info(f"finding role: {ResourceNames.SCC_ROLE} in namespace {namespace}")
        try:
            existing = self.rbac_api.read_namespaced_role(ResourceNames.SCC_ROLE, namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
            self.rbac_api.create_namespaced_role(namespace, desired)
            return

        if existing.rules == desired.rules and existing.metadata.owner_references == [self.owner_ref]:
            return
        existing.rules = desired.rules
        existing.metadata.owner_references = [self.owner_ref]
        self.rbac_api.replace_namespaced_role(ResourceNames.SCC_ROLE, namespace, existing)

    def record_scc_not_found_event(self, namespace: str, scc: str) -> None:
        """Write a Warning event into the namespace for a missing SCC"""
        event = CoreV1Event(
            metadata=V1ObjectMeta(
                generate_name=EventConstants.GENERATE_NAME,
                namespace=namespace,
                owner_references=[self.owner_ref],
            ),
            event_time=datetime.datetime.now(datetime.timezone.utc),
            reason=EventConstants.REASON,
            type=EventConstants.TYPE_WARNING,
            action=EventConstants.ACTION,
            message=EventConstants.MESSAGE.format(scc=scc, annotation=LabelKeys.NAMESPACE_SCC_ANNOTATION),
            reporting_component=EventConstants.REPORTING_COMPONENT,
            reporting_instance=self.owner_ref.name,
            involved_object=V1ObjectReference(
                kind="Namespace",
                name=namespace,
                api_version="v1",
                namespace=namespace,
            ),
        )

        logger.info(f"Creating SCC failure event in namespace: {namespace}")
        try:
            self.core_api.create_namespaced_event(namespace, event)
        except ApiException as e:
            logger.error(f"Failed to create SCC not found event in namespace: {namespace}: {e}")
            raise

    # Bindings

    def ensure_scc_role_binding(self, sa: V1ServiceAccount, ref: V1RoleRef) -> None:
        namespace = sa.metadata.namespace
        logger.info(f"finding {ref.kind}: {ref.name}")
        if ref.kind == ROLE:
            self.rbac_api.read_namespaced_role(ref.name, namespace)
        elif ref.kind == CLUSTER_ROLE:
            self.rbac_api.read_cluster_role(ref.name)
        else:
            raise RBACReconcilerError(f"incorrect value set for roleKind - {ref.kind}, needs to be Role or ClusterRole")

        self._ensure_role_binding(sa, ResourceNames.SCC_ROLE_BINDING, ref)

    def ensure_legacy_role_binding(self, sa: V1ServiceAccount) -> None:
        namespace = sa.metadata.namespace
        name = ResourceNames.LEGACY_ROLE_BINDING

        if not self.settings.legacy_pipeline_rbac:
            try:
                self.rbac_api.delete_namespaced_role_binding(name, namespace)
                logger.info(f"Legacy Pipeline RBAC is disabled, removed role binding {namespace}/{name}")
            except ApiException as e:
                if not is_not_found(e):
                    raise
                logger.debug(f"Legacy Pipeline RBAC is disabled, no role binding {namespace}/{name}")
            return

        self._ensure_role_binding(sa, name, role_ref(CLUSTER_ROLE, ResourceNames.LEGACY_CLUSTER_ROLE),
                                  require_cluster_role=True)

    def _ensure_role_binding(self, sa: V1ServiceAccount, name: str, ref: V1RoleRef,
                             require_cluster_role: bool = False) -> None:
        namespace = sa.metadata.namespace
        logger.info(f"finding role-binding {namespace}/{name}")
        try:
            binding = self.rbac_api.read_namespaced_role_binding(name, namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
            if require_cluster_role:
                self.rbac_api.read_cluster_role(ref.name)
            self._create_role_binding(sa, name, ref)
            return

        # roleRef is immutable: delete and recreate
        if binding.role_ref.kind != ref.kind or binding.role_ref.name != ref.name:
            logger.info(f"Need to update RoleRef in RoleBinding {name} in namespace: {namespace}, "
                        f"deleting and recreating...")
            self.rbac_api.delete_namespaced_role_binding(name, namespace)
            self._create_role_binding(sa, name, ref)
            return

        self._update_role_binding(binding, sa)

    def _create_role_binding(self, sa: V1ServiceAccount, name: str, ref: V1RoleRef) -> None:
        namespace = sa.metadata.namespace
        logger.info(f"create new rolebinding {namespace}/{name}")
        binding = V1RoleBinding(
            metadata=V1ObjectMeta(name=name, namespace=namespace, owner_references=[self.owner_ref]),
            role_ref=ref,
            subjects=[service_account_subject(sa.metadata.name, namespace)],
        )
        try:
            self.rbac_api.create_namespaced_role_binding(namespace, binding)
        except ApiException as e:
            if not is_already_exists(e):
                logger.error(f"creation of rolebinding {namespace}/{name} failed: {e}")
                raise

    def _update_role_binding(self, binding: V1RoleBinding, sa: V1ServiceAccount) -> None:
        namespace = binding.metadata.namespace or sa.metadata.namespace
        name = binding.metadata.name
        changed = False

        subject = service_account_subject(sa.metadata.name, sa.metadata.namespace)
        if not has_subject(binding.subjects, subject):
            binding.subjects = list(binding.subjects or []) + [subject]
            changed = True

        owner_refs = update_owner_references(binding.metadata.owner_references, self.owner_ref)
        if owner_refs != (binding.metadata.owner_references or []):
            binding.metadata.owner_references = owner_refs
            changed = True

        if not changed:
            logger.debug(f"rolebinding {namespace}/{name} is up to date")
            return

        logger.info(f"update existing rolebinding {namespace}/{name}")
        self.rbac_api.replace_namespaced_role_binding(name, namespace, binding)
        logger.info(f"successfully updated rolebinding {namespace}/{name}")
