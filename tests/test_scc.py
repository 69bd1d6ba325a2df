"""
Tests for SCC ordering and policy ceiling validation
"""

import pytest
from unittest.mock import Mock

from kubernetes.client.rest import ApiException

from pipelines_rbac.libs.core.constants import ResourceNames
from pipelines_rbac.libs.core.exceptions import ConfigurationError, NotFoundError, PolicyViolationError
from pipelines_rbac.libs.scc.priority import (
    PolicyPriorityList,
    SecurityPolicyService,
    order_by_restrictiveness,
    restriction_points,
)
from pipelines_rbac.libs.scc.validator import PolicyCeilingValidator, scc_use_rule


class TestPolicyPriorityList:

    def test_index_comparison(self):
        ordering = PolicyPriorityList(["restricted", "anyuid", "privileged"])

        assert ordering.is_at_least_as_restrictive("restricted", "privileged") is True
        assert ordering.is_at_least_as_restrictive("anyuid", "anyuid") is True
        assert ordering.is_at_least_as_restrictive("privileged", "restricted") is False

    def test_unknown_policy_raises_not_found(self):
        ordering = PolicyPriorityList(["restricted"])

        with pytest.raises(NotFoundError):
            ordering.index_of("custom")

    def test_membership_and_length(self):
        ordering = PolicyPriorityList(["restricted", "anyuid"])

        assert "anyuid" in ordering
        assert "privileged" not in ordering
        assert len(ordering) == 2


class TestRestrictionOrdering:

    def test_privileged_scores_highest(self):
        privileged = {'allowPrivilegedContainer': True, 'volumes': ['*'], 'runAsUser': {'type': 'RunAsAny'}}
        restricted = {'volumes': ['configMap'], 'runAsUser': {'type': 'MustRunAsRange'}}

        assert restriction_points(privileged) > restriction_points(restricted)

    def test_dropped_capabilities_lower_the_score(self):
        base = {'volumes': ['configMap'], 'runAsUser': {'type': 'MustRunAsRange'}}
        dropping = dict(base, requiredDropCapabilities=['KILL', 'MKNOD'])

        assert restriction_points(dropping) < restriction_points(base)

    def test_name_breaks_ties(self):
        sccs = [
            {'metadata': {'name': 'b'}, 'volumes': []},
            {'metadata': {'name': 'a'}, 'volumes': []},
        ]

        assert order_by_restrictiveness(sccs).names == ['a', 'b']

    def test_cluster_ordering(self, cluster):
        service = SecurityPolicyService(cluster.custom_api)

        assert service.prioritized_list().names == ["restricted-v2", "anyuid", "pipelines-scc", "privileged"]


class TestSecurityPolicyService:

    def test_verify_exists(self, cluster):
        service = SecurityPolicyService(cluster.custom_api)

        service.verify_exists("anyuid")
        with pytest.raises(NotFoundError):
            service.verify_exists("missing")

    def test_other_api_errors_are_not_not_found(self):
        custom_api = Mock()
        custom_api.get_cluster_custom_object.side_effect = ApiException(status=500)
        service = SecurityPolicyService(custom_api)

        with pytest.raises(Exception) as exc_info:
            service.verify_exists("anyuid")

        assert not isinstance(exc_info.value, NotFoundError)


class TestPolicyCeilingValidator:

    def _validator(self, cluster):
        return PolicyCeilingValidator(SecurityPolicyService(cluster.custom_api), cluster.rbac_api)

    def test_empty_default_is_configuration_error(self, cluster):
        with pytest.raises(ConfigurationError):
            self._validator(cluster).validate("")

    def test_missing_default_is_not_found(self, cluster):
        with pytest.raises(NotFoundError):
            self._validator(cluster).validate("missing")

    def test_missing_ceiling_is_not_found(self, cluster):
        with pytest.raises(NotFoundError):
            self._validator(cluster).validate("pipelines-scc", "missing")

    def test_ceiling_more_restrictive_than_default_is_rejected(self, cluster):
        with pytest.raises(PolicyViolationError):
            self._validator(cluster).validate("pipelines-scc", "restricted-v2")

    def test_equal_ceiling_is_accepted(self, cluster):
        ordering = self._validator(cluster).validate("pipelines-scc", "pipelines-scc")

        assert "pipelines-scc" in ordering

    def test_no_ceiling(self, cluster):
        ordering = self._validator(cluster).validate("restricted-v2")

        assert len(ordering) == 4


class TestClusterPolicyGrant:

    def test_creates_cluster_role(self, cluster, owner_ref):
        PolicyCeilingValidator(SecurityPolicyService(cluster.custom_api), cluster.rbac_api) \
            .ensure_cluster_policy_grant("pipelines-scc", owner_ref)

        role = cluster.cluster_roles[ResourceNames.SCC_CLUSTER_ROLE]
        assert role.rules == [scc_use_rule("pipelines-scc")]
        assert role.metadata.owner_references == [owner_ref]

    def test_updates_rule_when_default_changes(self, cluster, owner_ref):
        validator = PolicyCeilingValidator(SecurityPolicyService(cluster.custom_api), cluster.rbac_api)
        validator.ensure_cluster_policy_grant("pipelines-scc", owner_ref)

        validator.ensure_cluster_policy_grant("anyuid", owner_ref)

        role = cluster.cluster_roles[ResourceNames.SCC_CLUSTER_ROLE]
        assert role.rules[0].resource_names == ["anyuid"]
        assert len(cluster.writes_of("replace", "ClusterRole")) == 1

    def test_unchanged_grant_is_not_written(self, cluster, owner_ref):
        validator = PolicyCeilingValidator(SecurityPolicyService(cluster.custom_api), cluster.rbac_api)
        validator.ensure_cluster_policy_grant("pipelines-scc", owner_ref)
        cluster.reset_writes()

        validator.ensure_cluster_policy_grant("pipelines-scc", owner_ref)

        assert cluster.writes == []
