"""
Exceptions Module

Error taxonomy of the RBAC reconciler.
"""


class RBACReconcilerError(Exception):
    """Base exception for all reconciler errors"""
    pass


class ConfigurationError(RBACReconcilerError):
    """Invalid or missing configuration, fatal to the whole pass"""
    pass


class AuthenticationError(RBACReconcilerError):
    """Cluster authentication could not be configured"""
    pass


class NotFoundError(RBACReconcilerError):
    """A referenced security policy or object does not exist on the cluster"""
    pass


class PolicyViolationError(RBACReconcilerError):
    """A security policy is less restrictive than the configured ceiling"""
    pass


class NamespaceReconcileError(RBACReconcilerError):
    """
    Failure while reconciling a single namespace.

    The batch skips the namespace and continues; its version label is left
    untouched so the next pass retries it.
    """

    def __init__(self, namespace: str, message: str, cause: Exception = None):
        super().__init__(f"namespace {namespace}: {message}")
        self.namespace = namespace
        self.cause = cause


class ReconcileAgain(RBACReconcilerError):
    """
    Not an error: the caller should requeue immediately.

    Raised after the bookkeeping object for a new release has been created.
    """

    def __init__(self, message: str = "reconcile again"):
        super().__init__(message)
