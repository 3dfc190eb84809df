"""Tests for the resumable matter details phase."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import timedelta
import json
from typing import Any

import pytest

from docketsync.adapters.clients.credentials import StaticTokenProvider
from docketsync.adapters.clients.docketwise import DocketwiseClient
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import Matter, Team, utcnow
from docketsync.sync.phases import RATE_LIMIT_EXCEEDED, MatterDetailsPhase
from docketsync.sync.progress import MATTER_DETAILS, JobRegistry

ACTOR = "actor-1"


def _run_async(coro: Any) -> Any:
    return asyncio.run(coro)


def seed_local_matters(db: DB, *remote_ids: int) -> None:
    with db.session() as session:
        session.add_all(
            [
                Team(remote_id=11, email="ana@firm.test", full_name="Ana Ruiz"),
                Team(remote_id=12, email="bo@firm.test", full_name="Bo Li"),
            ]
        )
        for remote_id in remote_ids:
            session.add(Matter(remote_id=remote_id, actor_id=ACTOR, title=f"M{remote_id}"))


def remote_details(fake_api: Any, *remote_ids: int) -> None:
    for remote_id in remote_ids:
        fake_api.details[remote_id] = {
            "id": remote_id,
            "title": f"Remote {remote_id}",
            "attorney_id": 11,
            "user_ids": [12],
        }


@pytest.fixture
def make_phase(
    db: DB, make_client: Callable[..., DocketwiseClient]
) -> Callable[..., MatterDetailsPhase]:
    def _make(*, token: str | None = "tok", batch_size: int = 2) -> MatterDetailsPhase:
        return MatterDetailsPhase(
            db,
            make_client(),
            StaticTokenProvider(token),
            JobRegistry(db),
            batch_size=batch_size,
        )

    return _make


class TestMatterDetailsPhase:
    def test_fetches_newest_first_and_writes_all_assignees(
        self,
        db: DB,
        fake_api: Any,
        sleeps: list[float],
        make_phase: Callable[..., MatterDetailsPhase],
    ) -> None:
        # setup
        seed_local_matters(db, 1, 2, 3)
        remote_details(fake_api, 1, 2, 3)

        # act
        result = _run_async(make_phase().run(ACTOR))

        # assert
        assert result.success
        assert (result.processed, result.updated, result.failed) == (3, 3, 0)
        assert fake_api.paths() == ["/matters/3", "/matters/2", "/matters/1"]
        assert sleeps == [0.6, 0.6]
        matter = db.get_matter_by_remote_id(2)
        assert matter is not None
        assert matter.title == "Remote 2"
        assert matter.assignees == "Ana Ruiz, Bo Li"
        assert json.loads(matter.remote_user_ids or "[]") == [11, 12]

        progress = JobRegistry(db).get(ACTOR, MATTER_DETAILS)
        assert progress is not None
        assert progress.status == "completed"
        assert progress.total_processed == 3
        assert progress.last_synced_id == 1

    def test_skips_when_already_completed_today(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        seed_local_matters(db, 1)
        remote_details(fake_api, 1)
        _run_async(make_phase().run(ACTOR))
        requests_after_first = len(fake_api.requests)

        second = _run_async(make_phase().run(ACTOR))

        assert second.success
        assert second.message == "Already synced today"
        assert second.processed == 1
        assert len(fake_api.requests) == requests_after_first

    def test_resumes_below_last_synced_id_on_same_day(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        # setup: an interrupted run already handled matter 3 today
        seed_local_matters(db, 1, 2, 3)
        remote_details(fake_api, 1, 2, 3)
        JobRegistry(db).update(
            ACTOR,
            MATTER_DETAILS,
            status="failed",
            last_sync_date=utcnow(),
            last_synced_id=3,
            total_processed=1,
        )

        # act
        result = _run_async(make_phase().run(ACTOR))

        # assert
        assert fake_api.paths() == ["/matters/2", "/matters/1"]
        assert result.processed == 3
        progress = JobRegistry(db).get(ACTOR, MATTER_DETAILS)
        assert progress is not None
        assert progress.status == "completed"
        assert progress.failure_reason is None

    def test_new_day_starts_from_the_top(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        seed_local_matters(db, 1, 2, 3)
        remote_details(fake_api, 1, 2, 3)
        JobRegistry(db).update(
            ACTOR,
            MATTER_DETAILS,
            status="completed",
            last_sync_date=utcnow() - timedelta(days=1),
            last_synced_id=2,
            total_processed=2,
        )

        result = _run_async(make_phase().run(ACTOR))

        assert fake_api.paths() == ["/matters/3", "/matters/2", "/matters/1"]
        assert result.processed == 3

    def test_exhausted_rate_limit_fails_the_phase(
        self,
        db: DB,
        fake_api: Any,
        sleeps: list[float],
        make_phase: Callable[..., MatterDetailsPhase],
    ) -> None:
        seed_local_matters(db, 1, 2, 3)
        remote_details(fake_api, 1, 2, 3)
        fake_api.fail["/matters/2"] = 429

        result = _run_async(make_phase().run(ACTOR))

        assert not result.success
        assert result.error == RATE_LIMIT_EXCEEDED
        assert "/matters/1" not in fake_api.paths()
        assert fake_api.paths().count("/matters/2") == 4
        assert sleeps == [0.6, 2, 4, 8]
        progress = JobRegistry(db).get(ACTOR, MATTER_DETAILS)
        assert progress is not None
        assert progress.status == "failed"
        assert progress.failure_reason == RATE_LIMIT_EXCEEDED
        assert progress.last_synced_id == 3
        assert progress.total_processed == 1

    def test_other_errors_count_as_failed_and_continue(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        seed_local_matters(db, 1, 2, 3)
        remote_details(fake_api, 1, 3)

        result = _run_async(make_phase().run(ACTOR))

        assert result.success
        assert (result.processed, result.failed) == (2, 1)
        progress = JobRegistry(db).get(ACTOR, MATTER_DETAILS)
        assert progress is not None
        assert progress.status == "completed"
        assert progress.total_failed == 1

    def test_edited_matters_are_not_fetched(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        seed_local_matters(db, 1, 2)
        remote_details(fake_api, 1, 2)
        edited = db.get_matter_by_remote_id(2)
        assert edited is not None
        db.apply_manual_edit(edited.matter_id, {"title": "Kept"}, edited_by="staff")

        result = _run_async(make_phase().run(ACTOR))

        assert fake_api.paths() == ["/matters/1"]
        assert (result.skipped, result.updated, result.processed) == (1, 1, 2)
        kept = db.get_matter_by_remote_id(2)
        assert kept is not None and kept.title == "Kept"

    def test_no_matters_completes_immediately(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        result = _run_async(make_phase().run(ACTOR))

        assert result.success
        assert result.message == "All matter details are up to date"
        assert fake_api.requests == []
        progress = JobRegistry(db).get(ACTOR, MATTER_DETAILS)
        assert progress is not None and progress.status == "completed"

    def test_missing_token_reports_not_connected(
        self, db: DB, fake_api: Any, make_phase: Callable[..., MatterDetailsPhase]
    ) -> None:
        seed_local_matters(db, 1)

        result = _run_async(make_phase(token=None).run(ACTOR))

        assert not result.success
        assert result.not_connected
        assert fake_api.requests == []
        assert JobRegistry(db).get(ACTOR, MATTER_DETAILS) is None
