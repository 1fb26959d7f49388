"""
Assignment and scope-tag helpers — typed views over Graph assignment
targets, and the payloads used to copy them onto a new policy.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .models import (
    AllDevicesTarget,
    AllUsersTarget,
    AssignmentFilter,
    AssignmentTarget,
    ExcludedGroupTarget,
    IncludedGroupTarget,
    PolicyAssignment,
    ResolvedAssignment,
    UnknownTarget,
)

_GRAPH = "#microsoft.graph."

INCLUDED_GROUP = "groupAssignmentTarget"
EXCLUDED_GROUP = "exclusionGroupAssignmentTarget"
ALL_DEVICES = "allDevicesAssignmentTarget"
ALL_USERS = "allLicensedUsersAssignmentTarget"

DEFAULT_SCOPE_TAG = "0"


def _short_type(odata_type: str) -> str:
    return odata_type.split(".")[-1]


def parse_target(raw: dict) -> AssignmentTarget:
    """Typed assignment target from a Graph target object."""
    odata_type = raw.get("@odata.type") or ""
    filter_id = raw.get("deviceAndAppManagementAssignmentFilterId")
    assignment_filter = None
    if filter_id:
        assignment_filter = AssignmentFilter(
            filter_id=filter_id,
            filter_type=raw.get("deviceAndAppManagementAssignmentFilterType"),
        )

    kind = _short_type(odata_type)
    if kind == EXCLUDED_GROUP:
        return ExcludedGroupTarget(raw.get("groupId") or "", assignment_filter)
    if kind == INCLUDED_GROUP:
        return IncludedGroupTarget(raw.get("groupId") or "", assignment_filter)
    if kind == ALL_DEVICES:
        return AllDevicesTarget(assignment_filter)
    if kind == ALL_USERS:
        return AllUsersTarget(assignment_filter)
    return UnknownTarget(odata_type, raw, assignment_filter)


def parse_assignment(raw: dict) -> PolicyAssignment:
    return PolicyAssignment(id=raw.get("id") or "", target=parse_target(raw.get("target") or {}))


def target_to_graph(target: AssignmentTarget) -> dict:
    """Graph JSON for a typed target."""
    if isinstance(target, UnknownTarget):
        return dict(target.raw)

    if isinstance(target, IncludedGroupTarget):
        body = {"@odata.type": _GRAPH + INCLUDED_GROUP, "groupId": target.group_id}
    elif isinstance(target, ExcludedGroupTarget):
        body = {"@odata.type": _GRAPH + EXCLUDED_GROUP, "groupId": target.group_id}
    elif isinstance(target, AllDevicesTarget):
        body = {"@odata.type": _GRAPH + ALL_DEVICES}
    elif isinstance(target, AllUsersTarget):
        body = {"@odata.type": _GRAPH + ALL_USERS}
    else:
        raise TypeError(f"Unsupported assignment target: {type(target).__name__}")

    if target.assignment_filter:
        body["deviceAndAppManagementAssignmentFilterId"] = target.assignment_filter.filter_id
        if target.assignment_filter.filter_type:
            body["deviceAndAppManagementAssignmentFilterType"] = (
                target.assignment_filter.filter_type
            )
    return body


def assignments_for_copy(assignments: Iterable[PolicyAssignment]) -> list[dict]:
    """Body entries for POST configurationPolicies/{id}/assign."""
    return [{"target": target_to_graph(a.target)} for a in assignments]


def group_ids(assignments: Iterable[PolicyAssignment]) -> list[str]:
    ids = []
    for a in assignments:
        if isinstance(a.target, (IncludedGroupTarget, ExcludedGroupTarget)) and a.target.group_id:
            ids.append(a.target.group_id)
    return ids


def filter_ids(assignments: Iterable[PolicyAssignment]) -> list[str]:
    return [
        a.target.assignment_filter.filter_id
        for a in assignments
        if a.target.assignment_filter
    ]


def resolve_assignments(
    assignments: Iterable[PolicyAssignment],
    group_names: Optional[dict[str, str]] = None,
    filter_names: Optional[dict[str, dict]] = None,
) -> list[ResolvedAssignment]:
    """Display records with group and filter names filled in where known."""
    group_names = group_names or {}
    filter_names = filter_names or {}
    resolved = []

    for a in assignments:
        target = a.target
        group_id: Optional[str] = None
        if isinstance(target, IncludedGroupTarget):
            target_type = "Included Group"
            group_id = target.group_id
            target_name = group_names.get(group_id, group_id)
        elif isinstance(target, ExcludedGroupTarget):
            target_type = "Excluded Group"
            group_id = target.group_id
            target_name = group_names.get(group_id, group_id)
        elif isinstance(target, AllDevicesTarget):
            target_type = "All Devices"
            target_name = "All Devices"
        elif isinstance(target, AllUsersTarget):
            target_type = "All Users"
            target_name = "All Users"
        else:
            target_type = "Unknown"
            target_name = _short_type(target.odata_type) or "Unknown"

        f = target.assignment_filter
        resolved.append(ResolvedAssignment(
            id=a.id,
            target_type=target_type,
            target_name=target_name,
            group_id=group_id,
            filter_type=f.filter_type if f else None,
            filter_id=f.filter_id if f else None,
            filter_display_name=(
                filter_names.get(f.filter_id, {}).get("displayName", f.filter_id) if f else None
            ),
        ))

    return resolved


def scope_tags_for_copy(policy: dict) -> list[str]:
    """Role scope tag ids of a source policy, defaulting to the built-in tag."""
    tags = [str(t) for t in (policy.get("roleScopeTagIds") or []) if str(t)]
    return tags or [DEFAULT_SCOPE_TAG]
