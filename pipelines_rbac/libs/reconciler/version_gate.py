"""
Version Gate

Decides whether a full RBAC pass is needed. The bookkeeping object is a
TektonInstallerSet created once per release; when none exists for the target
version (upgrade, or the object was lost) every namespace's RBAC label is
cleared, a new bookkeeping object is created and the caller is told to
reconcile again.
"""

import logging
from typing import Any, Dict, Optional

from kubernetes.client import V1OwnerReference
from kubernetes.client.rest import ApiException

from ..core.config import OwnerIdentity
from ..core.constants import BookkeepingConstants, KubernetesConstants, LabelKeys, ResourceNames
from ..core.exceptions import ReconcileAgain
from ..core.objects import controller_owner_reference
from ..core.utils import handle_api_error, is_not_found
from .labels import NamespaceLabeler

logger = logging.getLogger(__name__)

API_VERSION = f"{KubernetesConstants.OPERATOR_API_GROUP}/{KubernetesConstants.OPERATOR_API_VERSION}"


def owner_reference_for(installer_set: Dict[str, Any]) -> V1OwnerReference:
    """Controller owner reference pointing at a bookkeeping object"""
    metadata = installer_set.get('metadata', {})
    return controller_owner_reference(
        api_version=installer_set.get('apiVersion', API_VERSION),
        kind=installer_set.get('kind', BookkeepingConstants.KIND),
        name=metadata.get('name', ''),
        uid=metadata.get('uid', ''),
    )


class BookkeepingStore:
    """Lookup, creation and deletion of RBAC bookkeeping installer sets"""

    def __init__(self, custom_api, target_namespace: str, owner: Optional[OwnerIdentity] = None):
        """
        Args:
            custom_api: Kubernetes CustomObjectsApi client
            target_namespace: namespace recorded on the bookkeeping object
            owner: parent configuration resource, if known
        """
        self.custom_api = custom_api
        self.target_namespace = target_namespace
        self.owner = owner

    def _coordinates(self) -> Dict[str, str]:
        return {
            'group': KubernetesConstants.OPERATOR_API_GROUP,
            'version': KubernetesConstants.OPERATOR_API_VERSION,
            'plural': str(KubernetesConstants.ResourceName.INSTALLER_SETS),
        }

    def delete(self, name: str) -> bool:
        """Delete by name; returns False if it was already gone"""
        try:
            self.custom_api.delete_cluster_custom_object(name=name, **self._coordinates())
            return True
        except ApiException as e:
            if is_not_found(e):
                return False
            raise

    def delete_obsolete(self) -> None:
        if self.delete(ResourceNames.OBSOLETE_INSTALLER_SET):
            logger.info(f"deleted obsolete installer set {ResourceNames.OBSOLETE_INSTALLER_SET}")

    def find_current(self, version: str) -> Optional[Dict[str, Any]]:
        """
        Return the bookkeeping object for version; any for another version is deleted.
        """
        selector = ",".join(f"{k}={v}" for k, v in BookkeepingConstants.selector_labels().items())
        try:
            response = self.custom_api.list_cluster_custom_object(label_selector=selector, **self._coordinates())
        except ApiException as e:
            handle_api_error(e, "failed to list RBAC installer sets")

        current = None
        for item in response.get('items', []):
            annotations = item.get('metadata', {}).get('annotations') or {}
            if current is None and annotations.get(LabelKeys.RELEASE_VERSION) == version:
                current = item
                continue
            name = item['metadata']['name']
            logger.info(f"deleting RBAC installer set {name} for release {annotations.get(LabelKeys.RELEASE_VERSION)}")
            self.delete(name)
        return current

    def create(self, version: str) -> Dict[str, Any]:
        metadata = {
            'generateName': BookkeepingConstants.NAME_PREFIX,
            'labels': BookkeepingConstants.selector_labels(),
            'annotations': {
                LabelKeys.RELEASE_VERSION: version,
                LabelKeys.TARGET_NAMESPACE: self.target_namespace,
            },
        }
        if self.owner is not None:
            metadata['ownerReferences'] = [{
                'apiVersion': self.owner.api_version,
                'kind': self.owner.kind,
                'name': self.owner.name,
                'uid': self.owner.uid,
                'controller': True,
                'blockOwnerDeletion': True,
            }]
        body = {
            'apiVersion': API_VERSION,
            'kind': BookkeepingConstants.KIND,
            'metadata': metadata,
            'spec': {},
        }
        created = self.custom_api.create_cluster_custom_object(body=body, **self._coordinates())
        logger.info(f"created RBAC installer set {created.get('metadata', {}).get('name')} for release {version}")
        return created


class VersionGate:
    """Forces a full RBAC pass when the bookkeeping object is missing"""

    def __init__(self, store: BookkeepingStore, labeler: NamespaceLabeler, version: str):
        self.store = store
        self.labeler = labeler
        self.version = version

    def ensure_bookkeeping(self) -> Dict[str, Any]:
        """
        Returns:
            The bookkeeping object for the target version

        Raises:
            ReconcileAgain: after clearing labels and creating a new bookkeeping object
        """
        self.store.delete_obsolete()

        current = self.store.find_current(self.version)
        if current is not None:
            return current

        # New release or lost bookkeeping: every namespace must be redone
        logger.info(f"no RBAC bookkeeping object for release {self.version}, forcing full reconciliation")
        self.labeler.clear_rbac_labels()
        self.store.create(self.version)
        raise ReconcileAgain(f"created RBAC bookkeeping object for release {self.version}")
