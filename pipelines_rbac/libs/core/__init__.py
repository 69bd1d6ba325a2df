"""
Core Libraries

Shared functionality and utilities for the RBAC reconciler.
"""

from .auth import ClusterAuth, ClusterClients
from .config import ConfigManager, ReconcilerSettings, OwnerIdentity, apply_param_defaults
from .exceptions import (
    RBACReconcilerError,
    ConfigurationError,
    AuthenticationError,
    NotFoundError,
    PolicyViolationError,
    NamespaceReconcileError,
    ReconcileAgain,
)
from .utils import setup_logging, disable_ssl_warnings

__all__ = [
    'ClusterAuth',
    'ClusterClients',
    'ConfigManager',
    'ReconcilerSettings',
    'OwnerIdentity',
    'apply_param_defaults',
    'RBACReconcilerError',
    'ConfigurationError',
    'AuthenticationError',
    'NotFoundError',
    'PolicyViolationError',
    'NamespaceReconcileError',
    'ReconcileAgain',
    'setup_logging',
    'disable_ssl_warnings',
]
