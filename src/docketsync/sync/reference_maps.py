"""In-memory lookups from Docketwise ids to display values.

Maps are rebuilt from the local store at the start of every phase that needs
them and thrown away afterwards; nothing here touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from docketsync.adapters.clients.docketwise import DocketwiseMatter, NamedRef
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import Contact, Team

UNKNOWN_CLIENT = "Unknown Client"
UNTITLED_MATTER = "Untitled Matter"


@dataclass
class ReferenceMaps:
    users: dict[int, str] = field(default_factory=dict)
    clients: dict[int, str] = field(default_factory=dict)
    matter_types: dict[int, str] = field(default_factory=dict)
    statuses: dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResolvedStatus:
    remote_id: int | None
    name: str | None


def _join_name(first: str | None, last: str | None) -> str:
    return f"{first or ''} {last or ''}".strip()


def team_display_name(team: Team) -> str:
    return team.full_name or _join_name(team.first_name, team.last_name) or team.email


def contact_display_name(contact: Contact) -> str:
    return (
        contact.company_name
        or _join_name(contact.first_name, contact.last_name)
        or UNKNOWN_CLIENT
    )


def load_reference_maps(db: DB) -> ReferenceMaps:
    """Build fresh id → display maps from the rows currently in the store."""
    return ReferenceMaps(
        users={team.remote_id: team_display_name(team) for team in db.fetch_teams()},
        clients={
            contact.remote_id: contact_display_name(contact)
            for contact in db.fetch_contacts()
        },
        matter_types={mt.remote_id: mt.name for mt in db.fetch_matter_types()},
        statuses={status.remote_id: status.name for status in db.fetch_matter_statuses()},
    )


def resolve_client_name(matter: DocketwiseMatter, maps: ReferenceMaps) -> str | None:
    if matter.client_id:
        mapped = maps.clients.get(matter.client_id)
        if mapped:
            return mapped

    if matter.client:
        name = matter.client.company_name or _join_name(
            matter.client.first_name, matter.client.last_name
        )
        if name:
            return name

    return None


def resolve_primary_assignee(
    matter: DocketwiseMatter, maps: ReferenceMaps
) -> str | None:
    if matter.attorney_id:
        name = maps.users.get(matter.attorney_id)
        if name:
            return name
    if matter.assignee and matter.assignee.name:
        return matter.assignee.name
    return None


def resolve_assignees(
    matter: DocketwiseMatter, maps: ReferenceMaps
) -> tuple[list[int], list[str]]:
    """Collect assignee ids and names from attorney, user_ids and assignee.

    Ids are de-duplicated in first-seen order; a name is added only when it
    can be resolved.
    """
    ids: list[int] = []
    names: list[str] = []

    def add(remote_id: int, fallback_name: str | None = None) -> None:
        if remote_id in ids:
            return
        ids.append(remote_id)
        name = maps.users.get(remote_id) or fallback_name
        if name:
            names.append(name)

    if matter.attorney_id:
        add(matter.attorney_id)
    for user_id in matter.user_ids or []:
        add(user_id)
    if matter.assignee and matter.assignee.id:
        add(matter.assignee.id, matter.assignee.name)

    return ids, names


def resolve_status(matter: DocketwiseMatter, maps: ReferenceMaps) -> ResolvedStatus:
    """Resolve a matter's status in order of preference.

    matter_status_id, then workflow_stage_id (map, then the embedded stage
    name), then an embedded status object, then a bare status string.
    """
    if matter.matter_status_id:
        return ResolvedStatus(
            matter.matter_status_id, maps.statuses.get(matter.matter_status_id)
        )
    if matter.workflow_stage_id:
        name = maps.statuses.get(matter.workflow_stage_id)
        if name is None and matter.workflow_stage:
            name = matter.workflow_stage.name
        return ResolvedStatus(matter.workflow_stage_id, name)
    if isinstance(matter.status, NamedRef):
        return ResolvedStatus(matter.status.id, matter.status.name)
    if isinstance(matter.status, str):
        return ResolvedStatus(None, matter.status)
    return ResolvedStatus(None, None)


def resolve_matter_type(
    matter: DocketwiseMatter, maps: ReferenceMaps
) -> tuple[int | None, str | None]:
    type_id = matter.matter_type_id or (
        matter.matter_type.id if matter.matter_type else None
    )
    if type_id:
        return type_id, maps.matter_types.get(type_id)
    return None, matter.type
