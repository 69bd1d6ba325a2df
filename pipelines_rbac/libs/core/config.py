"""
Configuration Management

Loads reconciler settings from a YAML file or from the TektonConfig resource
on the cluster, validates them and applies feature-toggle defaults.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from kubernetes.client.rest import ApiException

from .constants import KubernetesConstants, ParamNames, ReconcileConstants
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnerIdentity:
    """Identity of the parent configuration resource, when known"""
    api_version: str
    kind: str
    name: str
    uid: str


@dataclass(frozen=True)
class ReconcilerSettings:
    """
    Immutable settings for one reconciler process.

    The release version is injected here once at start-up and threaded
    explicitly through every component.
    """
    version: str
    default_scc: str
    max_allowed_scc: str = ""
    target_namespace: str = ReconcileConstants.DEFAULT_TARGET_NAMESPACE
    params: Dict[str, str] = field(default_factory=dict)
    period_seconds: int = ReconcileConstants.DEFAULT_PERIOD
    retry_delay_seconds: int = ReconcileConstants.DEFAULT_RETRY_DELAY
    skip_tls: bool = False
    debug: bool = False
    owner: Optional[OwnerIdentity] = None

    def is_enabled(self, param_name: str) -> bool:
        """A toggle is on unless its value is exactly "false" """
        return self.params.get(param_name, ParamNames.TRUE) != ParamNames.FALSE

    @property
    def create_rbac_resource(self) -> bool:
        return self.is_enabled(ParamNames.CREATE_RBAC_RESOURCE)

    @property
    def create_ca_bundles(self) -> bool:
        return self.is_enabled(ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS)

    @property
    def legacy_pipeline_rbac(self) -> bool:
        return self.is_enabled(ParamNames.LEGACY_PIPELINE_RBAC)


def apply_param_defaults(params: List[Dict[str, str]]) -> Dict[str, str]:
    """
    Normalize the toggle params.

    createRbacResource and legacyPipelineRbac default to "true" when absent or
    malformed. createCABundleConfigMaps defaults to "true" as well, except when
    it is absent and createRbacResource is explicitly "false": clusters that had
    opted out of RBAC before the CA bundle toggle existed keep CA bundles off.

    Args:
        params: list of {"name": ..., "value": ...} entries

    Returns:
        Dict mapping every param name to its normalized value
    """
    normalized = {}
    for param in params or []:
        name = param.get('name')
        if not name:
            continue
        normalized[name] = str(param.get('value', ''))

    toggles = (
        ParamNames.CREATE_RBAC_RESOURCE,
        ParamNames.LEGACY_PIPELINE_RBAC,
        ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS,
    )
    rbac_value = normalized.get(ParamNames.CREATE_RBAC_RESOURCE)
    ca_bundle_missing = ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS not in normalized

    for name in toggles:
        if normalized.get(name) not in (ParamNames.TRUE, ParamNames.FALSE):
            normalized[name] = ParamNames.TRUE

    if ca_bundle_missing and rbac_value == ParamNames.FALSE:
        normalized[ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS] = ParamNames.FALSE

    return normalized


class ConfigManager:
    """Manages configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'version': {'type': str, 'required': True},
        'targetNamespace': {'type': str, 'required': False},
        'params': {'type': list, 'required': False},
        'scc': {
            'type': dict,
            'required': True,
            'fields': {
                'default': {'type': str, 'required': True},
                'maxAllowed': {'type': str, 'required': False},
            }
        },
        'reconcile': {
            'type': dict,
            'required': False,
            'fields': {
                'periodSeconds': {'type': int, 'required': False},
                'retryDelaySeconds': {'type': int, 'required': False},
            }
        },
        'global': {
            'type': dict,
            'required': False,
            'fields': {
                'skip_tls': {'type': bool, 'required': False},
                'debug': {'type': bool, 'required': False},
            }
        },
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data = {}
        self.config_file_path = None

    def load_config(self, config_path: str) -> ReconcilerSettings:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            ReconcilerSettings built from the file

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")

        self.config_file_path = config_path
        logger.info(f"Successfully loaded configuration from {config_path}")
        return self.load_dict(self.config_data)

    def load_dict(self, data: Dict[str, Any]) -> ReconcilerSettings:
        """Validate an already-parsed configuration mapping and build settings"""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a dictionary")
        self.config_data = data
        self._validate_against_schema(data, self.CONFIG_SCHEMA, "")
        return self._build_settings(data)

    def load_from_cluster(self, custom_api, version: str,
                          name: str = ReconcileConstants.DEFAULT_TEKTON_CONFIG_NAME,
                          base: Optional[ReconcilerSettings] = None) -> ReconcilerSettings:
        """
        Build settings from the TektonConfig resource on the cluster.

        The release version is not part of TektonConfig; it comes from the
        running operator build.

        Args:
            custom_api: Kubernetes CustomObjectsApi client
            version: release version of this operator build
            name: TektonConfig name
            base: settings whose loop/global values are kept

        Raises:
            ConfigurationError: If the resource cannot be read or lacks SCC settings
        """
        try:
            tekton_config = custom_api.get_cluster_custom_object(
                group=KubernetesConstants.OPERATOR_API_GROUP,
                version=KubernetesConstants.OPERATOR_API_VERSION,
                plural=str(KubernetesConstants.ResourceName.TEKTON_CONFIGS),
                name=name,
            )
        except ApiException as e:
            raise ConfigurationError(f"Failed to read TektonConfig {name}: {e}")

        spec = tekton_config.get('spec', {}) or {}
        scc = ((spec.get('platforms') or {}).get('openshift') or {}).get('scc') or {}
        data = {
            'version': version,
            'targetNamespace': spec.get('targetNamespace') or ReconcileConstants.DEFAULT_TARGET_NAMESPACE,
            'params': spec.get('params') or [],
            'scc': {'default': scc.get('default', ''), 'maxAllowed': scc.get('maxAllowed', '')},
        }
        if base is not None:
            data['reconcile'] = {
                'periodSeconds': base.period_seconds,
                'retryDelaySeconds': base.retry_delay_seconds,
            }
            data['global'] = {'skip_tls': base.skip_tls, 'debug': base.debug}

        metadata = tekton_config.get('metadata', {}) or {}
        owner = OwnerIdentity(
            api_version=tekton_config.get(
                'apiVersion',
                f"{KubernetesConstants.OPERATOR_API_GROUP}/{KubernetesConstants.OPERATOR_API_VERSION}"),
            kind=tekton_config.get('kind', 'TektonConfig'),
            name=metadata.get('name', name),
            uid=metadata.get('uid', ''),
        )
        logger.info(f"Loaded settings from TektonConfig {name}")
        settings = self.load_dict(data)
        return replace(settings, owner=owner)

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                # bool is an int subclass; keep them apart
                if not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool)):
                    raise ConfigurationError(f"{current_path} must be a {expected_type.__name__}")

                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    def _build_settings(self, data: Dict[str, Any]) -> ReconcilerSettings:
        scc = data['scc']
        default_scc = scc.get('default') or ''
        if not default_scc:
            raise ConfigurationError("scc.default cannot be empty")
        if not data['version']:
            raise ConfigurationError("version cannot be empty")

        for entry in data.get('params') or []:
            if not isinstance(entry, dict) or 'name' not in entry:
                raise ConfigurationError("params entries must be mappings with a 'name' key")

        reconcile = data.get('reconcile') or {}
        global_section = data.get('global') or {}
        return ReconcilerSettings(
            version=data['version'],
            default_scc=default_scc,
            max_allowed_scc=scc.get('maxAllowed') or '',
            target_namespace=data.get('targetNamespace') or ReconcileConstants.DEFAULT_TARGET_NAMESPACE,
            params=apply_param_defaults(data.get('params') or []),
            period_seconds=reconcile.get('periodSeconds') or ReconcileConstants.DEFAULT_PERIOD,
            retry_delay_seconds=reconcile.get('retryDelaySeconds') or ReconcileConstants.DEFAULT_RETRY_DELAY,
            skip_tls=bool(global_section.get('skip_tls', False)),
            debug=bool(global_section.get('debug', False)),
        )

    def get_config_template_content(self) -> str:
        """
        Generate configuration template content as string without file I/O

        Returns:
            str: YAML configuration template content
        """
        header = (
            "# Pipelines RBAC Reconciler Configuration File\n"
            "# Toggles are strings: \"true\" or \"false\"\n"
        )
        template = {
            'version': '1.0.0',
            'targetNamespace': ReconcileConstants.DEFAULT_TARGET_NAMESPACE,
            'params': [
                {'name': ParamNames.CREATE_RBAC_RESOURCE, 'value': ParamNames.TRUE},
                {'name': ParamNames.CREATE_CA_BUNDLE_CONFIGMAPS, 'value': ParamNames.TRUE},
                {'name': ParamNames.LEGACY_PIPELINE_RBAC, 'value': ParamNames.TRUE},
            ],
            'scc': {'default': 'pipelines-scc', 'maxAllowed': ''},
            'reconcile': {
                'periodSeconds': ReconcileConstants.DEFAULT_PERIOD,
                'retryDelaySeconds': ReconcileConstants.DEFAULT_RETRY_DELAY,
            },
            'global': {'skip_tls': False, 'debug': False},
        }
        return header + yaml.safe_dump(template, sort_keys=False)

    def generate_config_template(self, output_dir: str = None) -> str:
        """
        Generate configuration template file

        Args:
            output_dir: Directory to save template (optional)

        Returns:
            str: Path to generated template file

        Raises:
            ConfigurationError: If template generation fails
        """
        try:
            if output_dir:
                output_path = Path(output_dir)
                output_path.mkdir(parents=True, exist_ok=True)
                config_file = output_path / ReconcileConstants.DEFAULT_CONFIG_FILE
            else:
                config_file = Path(ReconcileConstants.DEFAULT_CONFIG_FILE)

            with open(config_file, 'w') as f:
                f.write(self.get_config_template_content())

            logger.info(f"Configuration template generated: {config_file}")
            return str(config_file)

        except OSError as e:
            raise ConfigurationError(f"Failed to generate configuration template: {e}")
