"""
Legacy Edit Binding Migration

Older releases bound the ``pipeline`` service account through a RoleBinding
named ``edit`` owned by an installer set. That role is now granted by
``openshift-pipelines-edit``; this migration takes the service account out of
the old binding and releases it from installer set ownership.
"""

import logging

from kubernetes.client.rest import ApiException

from ..core.constants import BookkeepingConstants, ResourceNames
from ..core.objects import service_account_subject, subject_key
from ..core.utils import is_not_found
from .selector import is_reserved

logger = logging.getLogger(__name__)


class LegacyEditBindingMigration:

    def __init__(self, core_api, rbac_api):
        self.core_api = core_api
        self.rbac_api = rbac_api

    def run(self) -> int:
        """
        Returns:
            int: number of namespaces changed
        """
        changed = 0
        for ns in self.core_api.list_namespace().items:
            name = ns.metadata.name
            if is_reserved(name):
                continue
            if self.migrate_namespace(name):
                changed += 1
        logger.info(f"legacy edit binding migration changed {changed} namespace(s)")
        return changed

    def migrate_namespace(self, namespace: str) -> bool:
        binding_name = ResourceNames.OBSOLETE_EDIT_ROLE_BINDING
        try:
            binding = self.rbac_api.read_namespaced_role_binding(binding_name, namespace)
        except ApiException as e:
            if is_not_found(e):
                return False
            raise

        pipeline_key = subject_key(service_account_subject(ResourceNames.PIPELINE_SERVICE_ACCOUNT, namespace))
        subjects = list(binding.subjects or [])
        remaining = [s for s in subjects if subject_key(s) != pipeline_key]
        subject_removed = len(remaining) != len(subjects)

        if not remaining:
            logger.info(f"deleting rolebinding {namespace}/{binding_name}, no subjects left")
            self.rbac_api.delete_namespaced_role_binding(binding_name, namespace)
            return True

        owner_refs = list(binding.metadata.owner_references or [])
        owner_removed = False
        for index, ref in enumerate(owner_refs):
            if ref.kind == BookkeepingConstants.KIND:
                owner_refs.pop(index)
                owner_removed = True
                break

        if not subject_removed and not owner_removed:
            return False

        binding.subjects = remaining
        binding.metadata.owner_references = owner_refs
        self.rbac_api.replace_namespaced_role_binding(binding_name, namespace, binding)
        logger.info(f"migrated rolebinding {namespace}/{binding_name}")
        return True
