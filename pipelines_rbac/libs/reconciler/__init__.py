"""
Reconciler Libraries

Namespace selection, per-namespace RBAC, cluster binding aggregation, trust
bundles and release version gating.
"""

from .aggregator import ClusterBindingAggregator
from .cache import ClusterRoleBindingLister, ListCache, NamespaceLister
from .labels import NamespaceLabeler
from .migration import LegacyEditBindingMigration
from .namespace import NamespaceServiceAccount, PerNamespaceReconciler
from .rbac import PassResult, RBACReconciler
from .selector import NamespaceSelector, NamespacesToReconcile
from .trust_bundle import TrustBundleReconciler
from .version_gate import BookkeepingStore, VersionGate, owner_reference_for

__all__ = [
    'ClusterBindingAggregator',
    'ClusterRoleBindingLister',
    'ListCache',
    'NamespaceLister',
    'NamespaceLabeler',
    'LegacyEditBindingMigration',
    'NamespaceServiceAccount',
    'PerNamespaceReconciler',
    'PassResult',
    'RBACReconciler',
    'NamespaceSelector',
    'NamespacesToReconcile',
    'TrustBundleReconciler',
    'BookkeepingStore',
    'VersionGate',
    'owner_reference_for',
]
