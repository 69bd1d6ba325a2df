"""
RBAC Reconciler

Top-level pass over the cluster: validate SCC settings, select namespaces,
reconcile each one in isolation, update the shared cluster role binding once,
then stamp version labels. Trust bundle config maps are reconciled over their
own namespace list.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from kubernetes.client.rest import ApiException

from ..core.auth import ClusterClients
from ..core.config import ReconcilerSettings
from ..core.constants import LabelKeys
from ..core.exceptions import NamespaceReconcileError, RBACReconcilerError
from ..scc.priority import PolicyPriorityList, SecurityPolicyService
from ..scc.validator import PolicyCeilingValidator
from .aggregator import ClusterBindingAggregator
from .cache import ClusterRoleBindingLister, NamespaceLister
from .labels import NamespaceLabeler
from .namespace import NamespaceServiceAccount, PerNamespaceReconciler
from .selector import NamespaceSelector, NamespacesToReconcile
from .trust_bundle import TrustBundleReconciler
from .version_gate import BookkeepingStore, VersionGate, owner_reference_for

logger = logging.getLogger(__name__)


def _has_label(ns, key: str, value: str) -> bool:
    return (ns.metadata.labels or {}).get(key) == value


@dataclass
class PassResult:
    """Outcome of one reconciliation pass"""
    rbac_reconciled: List[str] = field(default_factory=list)
    rbac_failed: Dict[str, str] = field(default_factory=dict)
    trust_bundle_reconciled: List[str] = field(default_factory=list)
    trust_bundle_failed: Dict[str, str] = field(default_factory=dict)
    cancelled: bool = False


class RBACReconciler:
    """Drives one reconciliation pass at a time; assumes a single active writer"""

    def __init__(self, clients: ClusterClients, settings: ReconcilerSettings,
                 cancel_event: Optional[threading.Event] = None, cache_ttl: float = 30.0):
        """
        Args:
            clients: Kubernetes API clients
            settings: immutable reconciler settings
            cancel_event: when set, the pass stops between namespaces
            cache_ttl: staleness bound for cached list reads
        """
        self.clients = clients
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()

        core_api, rbac_api, custom_api = clients.core_api, clients.rbac_api, clients.custom_api
        self.policy_service = SecurityPolicyService(custom_api)
        self.validator = PolicyCeilingValidator(self.policy_service, rbac_api)
        self.selector = NamespaceSelector(core_api, rbac_api, legacy_rbac=settings.legacy_pipeline_rbac)
        self.labeler = NamespaceLabeler(core_api, settings.version)
        self.version_gate = VersionGate(
            BookkeepingStore(custom_api, settings.target_namespace, settings.owner),
            self.labeler,
            settings.version,
        )
        self.trust_bundles = TrustBundleReconciler(core_api)
        self.namespace_lister = NamespaceLister(core_api, ttl=cache_ttl)
        self.binding_lister = ClusterRoleBindingLister(rbac_api, ttl=cache_ttl)

        self.owner_ref = None
        self.priority_list: Optional[PolicyPriorityList] = None

    def reconcile(self) -> PassResult:
        """
        Run one pass.

        Returns:
            PassResult

        Raises:
            ReconcileAgain: a new bookkeeping object was created; requeue immediately
            RBACReconcilerError / ApiException: validation or infrastructure failure
        """
        result = PassResult()
        create_rbac = self.settings.create_rbac_resource
        create_ca_bundles = self.settings.create_ca_bundles

        if not create_ca_bundles:
            logger.info("CA bundle creation is disabled")
        if not create_rbac:
            logger.info("RBAC resource creation is disabled")
        if not create_rbac and not create_ca_bundles:
            logger.info("Both CA bundle and RBAC creation are disabled, nothing to do")
            return result

        if create_rbac:
            self.ensure_prerequisites()

        selection = self.selector.select(self.settings.version)
        if selection.is_empty() and not create_rbac:
            logger.info("No namespaces need reconciliation for either RBAC or CA bundles")
            return result

        if create_rbac:
            self.reconcile_rbac(selection, result)

        if create_ca_bundles and not result.cancelled:
            self.reconcile_trust_bundles(selection, result)

        return result

    def ensure_prerequisites(self) -> None:
        installer_set = self.version_gate.ensure_bookkeeping()
        self.owner_ref = owner_reference_for(installer_set)

        self.priority_list = self.validator.validate(self.settings.default_scc, self.settings.max_allowed_scc)
        self.validator.ensure_cluster_policy_grant(self.settings.default_scc, self.owner_ref)

    def reconcile_rbac(self, selection: NamespacesToReconcile, result: PassResult) -> None:
        self.namespace_lister.cache.invalidate()
        self.binding_lister.cache.invalidate()
        aggregator = ClusterBindingAggregator(
            self.clients.rbac_api, self.namespace_lister, self.binding_lister,
            self.settings.version, self.owner_ref,
        )
        aggregator.prune_stale_subjects()

        if not selection.rbac:
            logger.info("No namespaces need RBAC reconciliation")
            return
        logger.debug(f"Found {len(selection.rbac)} namespaces to be reconciled for RBAC")

        namespace_reconciler = PerNamespaceReconciler(
            self.clients.core_api, self.clients.rbac_api, self.policy_service,
            self.settings, self.owner_ref, self.priority_list,
        )

        reconciled: List[NamespaceServiceAccount] = []
        for ns in selection.rbac:
            if self.cancel_event.is_set():
                logger.info("Pass cancelled, leaving remaining namespaces for the next pass")
                result.cancelled = True
                return
            try:
                reconciled.append(namespace_reconciler.reconcile(ns))
            except NamespaceReconcileError as e:
                logger.error(f"failed processing namespace {e.namespace}: {e}")
                result.rbac_failed[e.namespace] = str(e)

        if not reconciled:
            return

        # An aggregation failure propagates and no label is stamped this pass
        aggregator.aggregate(reconciled)
        logger.info("Successfully updated cluster role bindings")

        for entry in reconciled:
            name = entry.namespace.metadata.name
            if _has_label(entry.namespace, LabelKeys.NAMESPACE_VERSION, self.settings.version):
                result.rbac_reconciled.append(name)
                continue
            try:
                self.labeler.stamp_rbac(name)
                result.rbac_reconciled.append(name)
            except ApiException as e:
                logger.error(f"failed reconciling namespace {name}: {e}")
                result.rbac_failed[name] = str(e)

    def reconcile_trust_bundles(self, selection: NamespacesToReconcile, result: PassResult) -> None:
        if not selection.trust_bundle:
            logger.info("No namespaces need CA bundle reconciliation")
            return
        logger.debug(f"Found {len(selection.trust_bundle)} namespaces to be reconciled for CA bundles")

        for ns in selection.trust_bundle:
            if self.cancel_event.is_set():
                result.cancelled = True
                return
            name = ns.metadata.name
            try:
                self.trust_bundles.ensure(ns)
            except (ApiException, RBACReconcilerError) as e:
                logger.error(f"failed to ensure CA bundles in namespace {name}: {e}")
                result.trust_bundle_failed[name] = str(e)
                continue
            try:
                self.labeler.stamp_trust_bundle(name)
                result.trust_bundle_reconciled.append(name)
            except ApiException as e:
                logger.error(f"failed to patch trusted config label for namespace {name}: {e}")
                result.trust_bundle_failed[name] = str(e)
