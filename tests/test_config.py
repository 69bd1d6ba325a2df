"""
Tests for configuration loading and toggle defaulting
"""

import pytest
import yaml
from unittest.mock import Mock

from kubernetes.client.rest import ApiException

from pipelines_rbac.libs.core.config import ConfigManager, OwnerIdentity, ReconcilerSettings, apply_param_defaults
from pipelines_rbac.libs.core.constants import ParamNames, ReconcileConstants
from pipelines_rbac.libs.core.exceptions import ConfigurationError


def _param(name, value):
    return {'name': name, 'value': value}


class TestParamDefaults:
    """Toggle normalization"""

    def test_all_absent_defaults_to_true(self):
        params = apply_param_defaults([])

        assert params[ParamNames.CREATE_RBAC_RESOURCE] == "true"
        assert params[ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS] == "true"
        assert params[ParamNames.LEGACY_PIPELINE_RBAC] == "true"

    def test_malformed_value_defaults_to_true(self):
        params = apply_param_defaults([_param(ParamNames.LEGACY_PIPELINE_RBAC, "nope")])

        assert params[ParamNames.LEGACY_PIPELINE_RBAC] == "true"

    def test_ca_bundles_follow_disabled_rbac_when_absent(self):
        params = apply_param_defaults([_param(ParamNames.CREATE_RBAC_RESOURCE, "false")])

        assert params[ParamNames.CREATE_RBAC_RESOURCE] == "false"
        assert params[ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS] == "false"

    def test_explicit_ca_bundle_value_is_kept(self):
        params = apply_param_defaults([
            _param(ParamNames.CREATE_RBAC_RESOURCE, "false"),
            _param(ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS, "true"),
        ])

        assert params[ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS] == "true"

    def test_unrelated_params_pass_through(self):
        params = apply_param_defaults([_param("pruner", "enabled")])

        assert params["pruner"] == "enabled"


class TestReconcilerSettings:

    def test_toggle_properties(self):
        settings = ReconcilerSettings(
            version="1.0.0",
            default_scc="pipelines-scc",
            params=apply_param_defaults([_param(ParamNames.LEGACY_PIPELINE_RBAC, "false")]),
        )

        assert settings.create_rbac_resource is True
        assert settings.create_ca_bundles is True
        assert settings.legacy_pipeline_rbac is False

    def test_settings_are_immutable(self):
        settings = ReconcilerSettings(version="1.0.0", default_scc="pipelines-scc")

        with pytest.raises(Exception):
            settings.version = "2.0.0"


class TestConfigManager:
    """Loading and validation"""

    def _valid(self):
        return {
            'version': '1.21.0',
            'params': [_param(ParamNames.CREATE_RBAC_RESOURCE, "true")],
            'scc': {'default': 'pipelines-scc', 'maxAllowed': 'anyuid'},
            'reconcile': {'periodSeconds': 30},
            'global': {'debug': True},
        }

    def test_load_dict_builds_settings(self):
        settings = ConfigManager().load_dict(self._valid())

        assert settings.version == '1.21.0'
        assert settings.default_scc == 'pipelines-scc'
        assert settings.max_allowed_scc == 'anyuid'
        assert settings.period_seconds == 30
        assert settings.retry_delay_seconds == ReconcileConstants.DEFAULT_RETRY_DELAY
        assert settings.target_namespace == ReconcileConstants.DEFAULT_TARGET_NAMESPACE
        assert settings.debug is True
        assert settings.skip_tls is False

    def test_missing_required_field(self):
        data = self._valid()
        del data['scc']

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager().load_dict(data)

        assert "scc" in str(exc_info.value)

    def test_empty_default_scc_is_rejected(self):
        data = self._valid()
        data['scc']['default'] = ''

        with pytest.raises(ConfigurationError):
            ConfigManager().load_dict(data)

    def test_wrong_type_is_rejected(self):
        data = self._valid()
        data['reconcile']['periodSeconds'] = True

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager().load_dict(data)

        assert "reconcile.periodSeconds" in str(exc_info.value)

    def test_malformed_params_entry_is_rejected(self):
        data = self._valid()
        data['params'] = ["createRbacResource"]

        with pytest.raises(ConfigurationError):
            ConfigManager().load_dict(data)

    def test_load_config_from_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(self._valid()))

        manager = ConfigManager()
        settings = manager.load_config(str(config_file))

        assert settings.version == '1.21.0'
        assert manager.config_file_path == str(config_file)

    def test_load_config_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager().load_config(str(tmp_path / "absent.yaml"))

        assert "not found" in str(exc_info.value)

    def test_load_config_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("version: [unclosed")

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager().load_config(str(config_file))

        assert "Invalid YAML" in str(exc_info.value)

    def test_template_round_trips_through_loader(self, tmp_path):
        manager = ConfigManager()

        path = manager.generate_config_template(str(tmp_path))
        settings = manager.load_config(path)

        assert settings.default_scc == 'pipelines-scc'
        assert settings.create_rbac_resource is True


class TestLoadFromCluster:
    """Settings sourced from the TektonConfig resource"""

    def _tekton_config(self):
        return {
            'apiVersion': 'operator.tekton.dev/v1alpha1',
            'kind': 'TektonConfig',
            'metadata': {'name': 'config', 'uid': 'uid-config'},
            'spec': {
                'targetNamespace': 'openshift-pipelines',
                'params': [_param(ParamNames.LEGACY_PIPELINE_RBAC, "false")],
                'platforms': {'openshift': {'scc': {'default': 'pipelines-scc', 'maxAllowed': 'privileged'}}},
            },
        }

    def test_reads_scc_params_and_owner(self):
        custom_api = Mock()
        custom_api.get_cluster_custom_object.return_value = self._tekton_config()
        base = ReconcilerSettings(version="1.21.0", default_scc="x", period_seconds=42)

        settings = ConfigManager().load_from_cluster(custom_api, "1.21.0", base=base)

        assert settings.default_scc == 'pipelines-scc'
        assert settings.max_allowed_scc == 'privileged'
        assert settings.legacy_pipeline_rbac is False
        assert settings.period_seconds == 42
        assert settings.owner == OwnerIdentity(
            api_version='operator.tekton.dev/v1alpha1', kind='TektonConfig', name='config', uid='uid-config',
        )

    def test_read_failure_is_configuration_error(self):
        custom_api = Mock()
        custom_api.get_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ConfigurationError):
            ConfigManager().load_from_cluster(custom_api, "1.21.0")

    def test_missing_default_scc_is_rejected(self):
        tekton_config = self._tekton_config()
        tekton_config['spec']['platforms'] = {}
        custom_api = Mock()
        custom_api.get_cluster_custom_object.return_value = tekton_config

        with pytest.raises(ConfigurationError):
            ConfigManager().load_from_cluster(custom_api, "1.21.0")
