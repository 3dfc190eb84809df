from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import Matter
from docketsync.ui.cli import app

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
def matter_id(database_url: str) -> int:
    db = DB(database_url)
    db.create_schema()
    with db.session() as session:
        matter = Matter(remote_id=7, actor_id="default", title="Remote", status="Drafting")
        session.add(matter)
        session.flush()
        return matter.matter_id


class TestClassifyCommand:
    def test_prints_flags(self) -> None:
        result = runner.invoke(app, ["classify", "Case Filed"])

        assert result.exit_code == 0
        assert "is_filed: True" in result.output
        assert "category: completed" in result.output


class TestEditCommands:
    def test_init_db(self, database_url: str) -> None:
        result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        assert DB(database_url).count_matters() == 0

    def test_edit_then_clear(self, database_url: str, matter_id: int) -> None:
        edited = runner.invoke(
            app,
            [
                "edit",
                str(matter_id),
                "--set",
                "title=Local",
                "--set",
                "deadline=2025-09-30",
                "--by",
                "staff",
            ],
        )
        assert edited.exit_code == 0, edited.output
        matter = DB(database_url).get_matter_by_remote_id(7)
        assert matter is not None
        assert matter.is_edited
        assert matter.title == "Local"
        assert matter.deadline is not None and matter.deadline.isoformat() == "2025-09-30"

        cleared = runner.invoke(app, ["clear-edit", str(matter_id)])
        assert cleared.exit_code == 0
        matter = DB(database_url).get_matter_by_remote_id(7)
        assert matter is not None and not matter.is_edited

    def test_edit_rejects_unknown_field(self, matter_id: int) -> None:
        result = runner.invoke(
            app, ["edit", str(matter_id), "--set", "remote_id=1", "--by", "staff"]
        )

        assert result.exit_code == 1
        assert "remote_id" in result.output

    def test_clear_edit_missing_matter(self, matter_id: int) -> None:
        result = runner.invoke(app, ["clear-edit", "999"])

        assert result.exit_code == 1


class TestSyncCommands:
    def test_run_requires_api_url(
        self, database_url: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("DOCKETWISE_API_URL", raising=False)

        result = runner.invoke(app, ["sync", "run"])

        assert result.exit_code == 1
        assert "DOCKETWISE_API_URL" in result.output

    def test_status_for_new_actor(
        self, database_url: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DOCKETWISE_API_URL", "https://docketwise.test")
        monkeypatch.delenv("DOCKETWISE_ACCESS_TOKEN", raising=False)

        result = runner.invoke(app, ["sync", "status", "--actor", "firm-1"])

        assert result.exit_code == 0
        assert "Status: idle" in result.output
        assert "Connected: no" in result.output
        assert "Last sync: never" in result.output
