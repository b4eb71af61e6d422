"""Modelos de domínio e DTOs."""
from tfs_cli.models.devops_models import (
    ASSIGNED_TO_FIELD,
    CHILD_RELATION,
    HISTORY_FIELD,
    LIST_FIELDS,
    PARENT_RELATION,
    SHOW_FIELDS,
    TITLE_FIELD,
    PatchOperation,
    QueryResult,
    WorkItem,
    WorkItemLink,
    WorkItemReference,
    WorkItemRelation,
    WorkItemType,
    WorkItemTypeField,
)
from tfs_cli.models.identity_models import HeaderIdentity, Identity, Profile

__all__ = [
    "ASSIGNED_TO_FIELD",
    "CHILD_RELATION",
    "HISTORY_FIELD",
    "LIST_FIELDS",
    "PARENT_RELATION",
    "SHOW_FIELDS",
    "TITLE_FIELD",
    "HeaderIdentity",
    "Identity",
    "PatchOperation",
    "Profile",
    "QueryResult",
    "WorkItem",
    "WorkItemLink",
    "WorkItemReference",
    "WorkItemRelation",
    "WorkItemType",
    "WorkItemTypeField",
]
