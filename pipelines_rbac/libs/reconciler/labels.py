"""
Namespace Version Labels

Marks namespaces as reconciled for a release, one label per feature, using
merge patches that touch only the target label.
"""

import logging
from typing import List

from ..core.constants import LabelKeys

logger = logging.getLogger(__name__)


class NamespaceLabeler:
    """Sets and clears the per-feature version labels"""

    def __init__(self, core_api, version: str):
        self.core_api = core_api
        self.version = version

    def stamp(self, namespace: str, key: str) -> None:
        logger.info(f"add label {key} to mark namespace '{namespace}' as reconciled")
        patch = {"metadata": {"labels": {key: self.version}}}
        self.core_api.patch_namespace(namespace, patch)
        logger.info(f"namespace '{namespace}' successfully reconciled with label {key}={self.version}")

    def stamp_rbac(self, namespace: str) -> None:
        self.stamp(namespace, LabelKeys.NAMESPACE_VERSION)

    def stamp_trust_bundle(self, namespace: str) -> None:
        self.stamp(namespace, LabelKeys.NAMESPACE_TRUSTED_CONFIG_VERSION)

    def clear_rbac_labels(self) -> List[str]:
        """
        Remove the RBAC version label from every namespace that carries it.

        Returns:
            names of the namespaces patched
        """
        key = LabelKeys.NAMESPACE_VERSION
        namespaces = self.core_api.list_namespace(label_selector=key).items
        cleared = []
        for ns in namespaces:
            name = ns.metadata.name
            # a null value removes the key in a merge patch
            self.core_api.patch_namespace(name, {"metadata": {"labels": {key: None}}})
            cleared.append(name)
        if cleared:
            logger.info(f"cleared {key} from {len(cleared)} namespace(s)")
        return cleared
