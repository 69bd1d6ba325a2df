"""
Shared fixtures: an in-memory cluster seeded with the objects every
reconciliation pass expects, and a settings factory.
"""

import pytest
from kubernetes.client import V1ClusterRole, V1ObjectMeta, V1PolicyRule

from pipelines_rbac.libs.core.config import ReconcilerSettings, apply_param_defaults
from pipelines_rbac.libs.core.objects import controller_owner_reference

from fake_cluster import FakeCluster

VERSION = "1.21.0"
DEFAULT_SCC = "pipelines-scc"


def seed_sccs(cluster: FakeCluster) -> None:
    """Four SCCs, most restrictive first: restricted-v2, anyuid, pipelines-scc, privileged"""
    cluster.add_scc(
        "restricted-v2",
        volumes=["configMap", "secret", "emptyDir"],
        runAsUser={"type": "MustRunAsRange"},
        requiredDropCapabilities=["ALL"],
    )
    cluster.add_scc(
        "anyuid",
        volumes=["configMap", "secret"],
        runAsUser={"type": "RunAsAny"},
    )
    cluster.add_scc(
        "pipelines-scc",
        volumes=["configMap", "secret", "persistentVolumeClaim"],
        runAsUser={"type": "MustRunAsRange"},
    )
    cluster.add_scc(
        "privileged",
        allowPrivilegedContainer=True,
        volumes=["*"],
        runAsUser={"type": "RunAsAny"},
        allowedCapabilities=["*"],
    )


@pytest.fixture
def cluster():
    fake = FakeCluster()
    seed_sccs(fake)
    fake.add_cluster_role(V1ClusterRole(
        metadata=V1ObjectMeta(name="edit"),
        rules=[V1PolicyRule(api_groups=[""], resources=["pods"], verbs=["*"])],
    ))
    return fake


@pytest.fixture
def make_settings():
    def factory(params=None, **overrides):
        values = {
            'version': VERSION,
            'default_scc': DEFAULT_SCC,
            'params': apply_param_defaults(params or []),
        }
        values.update(overrides)
        return ReconcilerSettings(**values)
    return factory


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def owner_ref():
    return controller_owner_reference(
        api_version="operator.tekton.dev/v1alpha1",
        kind="TektonInstallerSet",
        name="rhosp-rbac-abcde",
        uid="uid-owner",
    )
