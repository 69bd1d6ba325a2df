"""
Pipelines RBAC Reconciler Library

Keeps pipeline RBAC, SCC grants and CA bundle config maps in place across
user namespaces.
"""

__version__ = "1.0.0"

# Core libraries
from .core import ClusterAuth, ConfigManager, ReconcilerSettings
from .core.exceptions import RBACReconcilerError, AuthenticationError, ConfigurationError, ReconcileAgain

# SCC libraries
from .scc import PolicyCeilingValidator, PolicyPriorityList, SecurityPolicyService

# Reconciler libraries
from .reconciler import (
    ClusterBindingAggregator,
    LegacyEditBindingMigration,
    NamespaceSelector,
    PerNamespaceReconciler,
    RBACReconciler,
    TrustBundleReconciler,
    VersionGate,
)

# Main application
from .main_app import ReconcilerApp, main

__all__ = [
    # Core
    'ClusterAuth',
    'ConfigManager',
    'ReconcilerSettings',
    'RBACReconcilerError',
    'AuthenticationError',
    'ConfigurationError',
    'ReconcileAgain',
    # SCC
    'PolicyCeilingValidator',
    'PolicyPriorityList',
    'SecurityPolicyService',
    # Reconciler
    'ClusterBindingAggregator',
    'LegacyEditBindingMigration',
    'NamespaceSelector',
    'PerNamespaceReconciler',
    'RBACReconciler',
    'TrustBundleReconciler',
    'VersionGate',
    # Main
    'ReconcilerApp',
    'main',
]
