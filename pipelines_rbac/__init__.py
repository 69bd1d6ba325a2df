"""
Pipelines RBAC Reconciler

Reconciles the RBAC and security-policy grants that pipeline workloads need in
every user namespace of an OpenShift cluster.
"""

__version__ = "1.0.0"

from .libs import RBACReconciler, ReconcilerApp, main

__all__ = [
    'RBACReconciler',
    'ReconcilerApp',
    'main',
]
