"""Tests for reference map building and matter field resolution."""

from __future__ import annotations

from docketsync.adapters.clients.docketwise import DocketwiseMatter
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import Contact, MatterStatus, MatterType, Team
from docketsync.sync.reference_maps import (
    UNKNOWN_CLIENT,
    ReferenceMaps,
    load_reference_maps,
    resolve_assignees,
    resolve_client_name,
    resolve_matter_type,
    resolve_primary_assignee,
    resolve_status,
)


def seed_reference_rows(db: DB) -> None:
    with db.session() as session:
        session.add_all(
            [
                Team(remote_id=1, email="a@firm.test", full_name="Ana Ruiz"),
                Team(remote_id=2, email="b@firm.test", first_name="Bo", last_name="Li"),
                Team(remote_id=3, email="c@firm.test"),
                Contact(remote_id=10, company_name="Acme", first_name="X"),
                Contact(remote_id=11, first_name="Li", last_name=" "),
                Contact(remote_id=12),
                MatterType(remote_id=20, name="H-1B"),
                MatterStatus(remote_id=30, name="Case Filed"),
            ]
        )


class TestLoadReferenceMaps:
    def test_display_name_fallbacks(self, db: DB) -> None:
        seed_reference_rows(db)

        maps = load_reference_maps(db)

        assert maps.users == {1: "Ana Ruiz", 2: "Bo Li", 3: "c@firm.test"}
        assert maps.clients == {10: "Acme", 11: "Li", 12: UNKNOWN_CLIENT}
        assert maps.matter_types == {20: "H-1B"}
        assert maps.statuses == {30: "Case Filed"}

    def test_rebuilt_from_current_rows(self, db: DB) -> None:
        seed_reference_rows(db)
        first = load_reference_maps(db)
        with db.session() as session:
            session.add(MatterStatus(remote_id=31, name="Approved"))

        second = load_reference_maps(db)

        assert 31 not in first.statuses
        assert second.statuses[31] == "Approved"


MAPS = ReferenceMaps(
    users={1: "Ana Ruiz", 2: "Bo Li"},
    clients={10: "Acme"},
    matter_types={20: "H-1B"},
    statuses={30: "Case Filed", 31: "RFE Received"},
)


class TestResolveClientName:
    def test_map_wins(self) -> None:
        matter = DocketwiseMatter.parse(
            {"id": 1, "client_id": 10, "client": {"id": 10, "company_name": "Other"}}
        )
        assert resolve_client_name(matter, MAPS) == "Acme"

    def test_embedded_client_when_not_mapped(self) -> None:
        matter = DocketwiseMatter.parse(
            {"id": 1, "client_id": 99, "client": {"first_name": "Jo", "last_name": "Kim"}}
        )
        assert resolve_client_name(matter, MAPS) == "Jo Kim"

    def test_none_when_unresolvable(self) -> None:
        matter = DocketwiseMatter.parse({"id": 1, "client_id": 99})
        assert resolve_client_name(matter, MAPS) is None


class TestResolveAssignees:
    def test_primary_assignee_falls_back_to_embedded(self) -> None:
        mapped = DocketwiseMatter.parse({"id": 1, "attorney_id": 2})
        embedded = DocketwiseMatter.parse(
            {"id": 2, "attorney_id": 99, "assignee": {"id": 99, "name": "Guest"}}
        )
        missing = DocketwiseMatter.parse({"id": 3})

        assert resolve_primary_assignee(mapped, MAPS) == "Bo Li"
        assert resolve_primary_assignee(embedded, MAPS) == "Guest"
        assert resolve_primary_assignee(missing, MAPS) is None

    def test_all_sources_deduplicated_in_order(self) -> None:
        matter = DocketwiseMatter.parse(
            {
                "id": 1,
                "attorney_id": 1,
                "user_ids": [2, 1, 77],
                "assignee": {"id": 88, "name": "Outside Counsel"},
            }
        )

        ids, names = resolve_assignees(matter, MAPS)

        assert ids == [1, 2, 77, 88]
        assert names == ["Ana Ruiz", "Bo Li", "Outside Counsel"]


class TestResolveStatus:
    def test_matter_status_id_first(self) -> None:
        matter = DocketwiseMatter.parse(
            {"id": 1, "matter_status_id": 31, "workflow_stage_id": 30, "status": "x"}
        )
        resolved = resolve_status(matter, MAPS)
        assert (resolved.remote_id, resolved.name) == (31, "RFE Received")

    def test_workflow_stage_map_then_embedded_name(self) -> None:
        mapped = DocketwiseMatter.parse({"id": 1, "workflow_stage_id": 30})
        embedded = DocketwiseMatter.parse(
            {"id": 2, "workflow_stage_id": 40, "workflow_stage": {"id": 40, "name": "Intake"}}
        )

        assert resolve_status(mapped, MAPS).name == "Case Filed"
        assert resolve_status(embedded, MAPS).name == "Intake"

    def test_status_object_then_string(self) -> None:
        as_object = DocketwiseMatter.parse({"id": 1, "status": {"id": 5, "name": "Open"}})
        as_string = DocketwiseMatter.parse({"id": 2, "status": "Pending"})
        missing = DocketwiseMatter.parse({"id": 3})

        assert resolve_status(as_object, MAPS).remote_id == 5
        assert resolve_status(as_string, MAPS).name == "Pending"
        assert resolve_status(missing, MAPS).name is None


class TestResolveMatterType:
    def test_id_then_embedded_then_type_string(self) -> None:
        by_id = DocketwiseMatter.parse({"id": 1, "matter_type_id": 20})
        embedded = DocketwiseMatter.parse({"id": 2, "matter_type": {"id": 20}})
        plain = DocketwiseMatter.parse({"id": 3, "type": "Family"})

        assert resolve_matter_type(by_id, MAPS) == (20, "H-1B")
        assert resolve_matter_type(embedded, MAPS) == (20, "H-1B")
        assert resolve_matter_type(plain, MAPS) == (None, "Family")
