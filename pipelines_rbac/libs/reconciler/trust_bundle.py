"""
Trust Bundle ConfigMaps

Ensures the two CA bundle config maps exist in a namespace. Their content is
injected by the platform; the reconciler only creates them and detaches them
from any owner so they survive bookkeeping-object rotation.
"""

import logging

from kubernetes.client import V1ConfigMap, V1ObjectMeta
from kubernetes.client.rest import ApiException

from ..core.constants import KubernetesConstants, LabelKeys, ResourceNames
from ..core.utils import is_already_exists, is_not_found

logger = logging.getLogger(__name__)


def trusted_ca_bundle_configmap(namespace: str) -> V1ConfigMap:
    # user-provided and system CA certificates
    return V1ConfigMap(metadata=V1ObjectMeta(
        name=ResourceNames.TRUSTED_CA_BUNDLE_CONFIGMAP,
        namespace=namespace,
        labels={
            KubernetesConstants.PART_OF_LABEL: KubernetesConstants.PART_OF_VALUE,
            LabelKeys.INJECT_TRUSTED_CABUNDLE: "true",
        },
    ))


def service_ca_bundle_configmap(namespace: str) -> V1ConfigMap:
    # service serving certificates, needed to talk to the internal registry
    return V1ConfigMap(metadata=V1ObjectMeta(
        name=ResourceNames.SERVICE_CA_BUNDLE_CONFIGMAP,
        namespace=namespace,
        labels={KubernetesConstants.PART_OF_LABEL: KubernetesConstants.PART_OF_VALUE},
        annotations={LabelKeys.INJECT_SERVICE_CABUNDLE: "true"},
    ))


class TrustBundleReconciler:
    """Idempotent ensure-and-detach of the CA bundle config maps"""

    def __init__(self, core_api):
        self.core_api = core_api

    def ensure(self, ns) -> None:
        namespace = ns.metadata.name
        logger.info(f"Ensuring CA bundle configmaps in namespace {namespace}")
        self._ensure_configmap(trusted_ca_bundle_configmap(namespace))
        self._ensure_configmap(service_ca_bundle_configmap(namespace))

    def _ensure_configmap(self, desired: V1ConfigMap) -> None:
        name = desired.metadata.name
        namespace = desired.metadata.namespace

        logger.info(f"finding configmap: {namespace}/{name}")
        try:
            existing = self.core_api.read_namespaced_config_map(name, namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
            logger.info(f"creating configmap {name} in {namespace} namespace")
            try:
                self.core_api.create_namespaced_config_map(namespace, desired)
            except ApiException as create_error:
                if not is_already_exists(create_error):
                    raise
            return

        if not existing.metadata.owner_references:
            return
        logger.info(f"removing owner references from configmap {namespace}/{name}")
        existing.metadata.owner_references = []
        self.core_api.replace_namespaced_config_map(name, namespace, existing)
