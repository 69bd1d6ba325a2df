"""
RBAC Object Helpers

Subject-list and owner-reference manipulation shared by every reconciler.
Subject lists stay ordered sequences on the wire but are compared and merged
through a set keyed by (kind, name, namespace), so duplicates never appear.
"""

from typing import Iterable, List, Optional, Tuple

from kubernetes.client import RbacV1Subject, V1OwnerReference

SERVICE_ACCOUNT_KIND = "ServiceAccount"

SubjectKey = Tuple[str, str, str]


def subject_key(subject: RbacV1Subject) -> SubjectKey:
    return (subject.kind or "", subject.name or "", subject.namespace or "")


def service_account_subject(name: str, namespace: str) -> RbacV1Subject:
    return RbacV1Subject(kind=SERVICE_ACCOUNT_KIND, name=name, namespace=namespace)


def has_subject(subjects: Optional[Iterable[RbacV1Subject]], subject: RbacV1Subject) -> bool:
    key = subject_key(subject)
    return any(subject_key(existing) == key for existing in subjects or [])


def compare_subjects(first: Optional[List[RbacV1Subject]], second: Optional[List[RbacV1Subject]]) -> bool:
    """True if both lists hold the same subjects, ignoring order"""
    first = first or []
    second = second or []
    if len(first) != len(second):
        return False
    return {subject_key(s) for s in first} == {subject_key(s) for s in second}


def merge_subjects(subjects: Optional[List[RbacV1Subject]],
                   additions: Optional[List[RbacV1Subject]]) -> List[RbacV1Subject]:
    """
    Union of two subject lists.

    Existing subjects keep their position; additions are appended in order,
    skipping any whose key is already present.
    """
    merged = list(subjects or [])
    seen = {subject_key(s) for s in merged}
    for subject in additions or []:
        key = subject_key(subject)
        if key not in seen:
            merged.append(subject)
            seen.add(key)
    return merged


def same_owner(ref: V1OwnerReference, owner: V1OwnerReference) -> bool:
    return (ref.api_version == owner.api_version
            and ref.kind == owner.kind
            and ref.name == owner.name)


def has_owner_reference(refs: Optional[List[V1OwnerReference]], owner: V1OwnerReference) -> bool:
    return any(same_owner(ref, owner) for ref in refs or [])


def update_owner_references(refs: Optional[List[V1OwnerReference]],
                            owner: V1OwnerReference) -> List[V1OwnerReference]:
    """
    Point an object's owner references at owner.

    An empty list becomes [owner]. A list already holding owner is returned
    unchanged. Otherwise only the first foreign reference is replaced; further
    foreign references are left alone.
    """
    refs = list(refs or [])
    if not refs:
        return [owner]
    if has_owner_reference(refs, owner):
        return refs
    refs.pop(0)
    refs.append(owner)
    return refs


def controller_owner_reference(api_version: str, kind: str, name: str, uid: str) -> V1OwnerReference:
    return V1OwnerReference(
        api_version=api_version,
        kind=kind,
        name=name,
        uid=uid,
        controller=True,
        block_owner_deletion=True,
    )
