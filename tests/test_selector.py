"""
Tests for namespace selection
"""

import pytest
from unittest.mock import Mock

from kubernetes.client import V1ObjectMeta, V1RoleBinding, V1RoleRef
from kubernetes.client.rest import ApiException

from pipelines_rbac.libs.core.constants import LabelKeys, ResourceNames
from pipelines_rbac.libs.core.exceptions import RBACReconcilerError
from pipelines_rbac.libs.reconciler.selector import NamespaceSelector, is_reserved

from conftest import VERSION


def _scc_binding(namespace, kind="ClusterRole", name=ResourceNames.SCC_CLUSTER_ROLE):
    return V1RoleBinding(
        metadata=V1ObjectMeta(name=ResourceNames.SCC_ROLE_BINDING, namespace=namespace),
        role_ref=V1RoleRef(api_group="rbac.authorization.k8s.io", kind=kind, name=name),
    )


def _legacy_binding(namespace):
    return V1RoleBinding(
        metadata=V1ObjectMeta(name=ResourceNames.LEGACY_ROLE_BINDING, namespace=namespace),
        role_ref=V1RoleRef(api_group="rbac.authorization.k8s.io", kind="ClusterRole",
                           name=ResourceNames.LEGACY_CLUSTER_ROLE),
    )


def _names(namespaces):
    return sorted(ns.metadata.name for ns in namespaces)


class TestReservedNamespaces:

    @pytest.mark.parametrize("name", ["openshift-monitoring", "kube-system", "openshift-"])
    def test_reserved(self, name):
        assert is_reserved(name) is True

    @pytest.mark.parametrize("name", ["openshift", "default", "my-openshift-app", "kube"])
    def test_not_reserved(self, name):
        assert is_reserved(name) is False


class TestNamespaceSelector:

    def test_unlabelled_namespace_needs_everything(self, cluster):
        cluster.add_namespace("app")

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]
        assert _names(result.trust_bundle) == ["app"]

    def test_reserved_and_terminating_namespaces_are_skipped(self, cluster):
        cluster.add_namespace("openshift-operators")
        cluster.add_namespace("kube-public")
        terminating = cluster.add_namespace("leaving")
        terminating.metadata.deletion_timestamp = "2026-01-01T00:00:00Z"

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert result.is_empty()

    def test_labelled_namespace_with_cluster_role_binding_is_done(self, cluster):
        cluster.add_namespace("app", labels={
            LabelKeys.NAMESPACE_VERSION: VERSION,
            LabelKeys.NAMESPACE_TRUSTED_CONFIG_VERSION: VERSION,
        })
        cluster.rbac_api.create_namespaced_role_binding("app", _scc_binding("app"))
        cluster.rbac_api.create_namespaced_role_binding("app", _legacy_binding("app"))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert result.is_empty()

    def test_missing_legacy_binding_is_selected_when_enabled(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})
        cluster.rbac_api.create_namespaced_role_binding("app", _scc_binding("app"))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api, legacy_rbac=True).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_present_legacy_binding_is_selected_when_disabled(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})
        cluster.rbac_api.create_namespaced_role_binding("app", _scc_binding("app"))
        cluster.rbac_api.create_namespaced_role_binding("app", _legacy_binding("app"))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api, legacy_rbac=False).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_absent_legacy_binding_is_done_when_disabled(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})
        cluster.rbac_api.create_namespaced_role_binding("app", _scc_binding("app"))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api, legacy_rbac=False).select(VERSION)

        assert result.rbac == []

    def test_old_version_label_is_selected(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: "1.20.0"})
        cluster.rbac_api.create_namespaced_role_binding("app", _scc_binding("app"))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_labelled_namespace_without_binding_is_selected(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_labelled_namespace_bound_to_role_is_selected(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})
        cluster.rbac_api.create_namespaced_role_binding(
            "app", _scc_binding("app", kind="Role", name=ResourceNames.SCC_ROLE))

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_scc_annotation_always_selects(self, cluster):
        cluster.add_namespace(
            "app",
            labels={LabelKeys.NAMESPACE_VERSION: VERSION},
            annotations={LabelKeys.NAMESPACE_SCC_ANNOTATION: "anyuid"},
        )

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]

    def test_features_are_selected_independently(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_TRUSTED_CONFIG_VERSION: VERSION})

        result = NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

        assert _names(result.rbac) == ["app"]
        assert result.trust_bundle == []

    def test_binding_read_error_propagates(self, cluster):
        cluster.add_namespace("app", labels={LabelKeys.NAMESPACE_VERSION: VERSION})
        cluster.fail("read", "RoleBinding", status=500)

        with pytest.raises(RBACReconcilerError):
            NamespaceSelector(cluster.core_api, cluster.rbac_api).select(VERSION)

    def test_list_failure_propagates(self):
        core_api = Mock()
        core_api.list_namespace.side_effect = ApiException(status=500)

        with pytest.raises(RBACReconcilerError):
            NamespaceSelector(core_api, Mock()).select(VERSION)
