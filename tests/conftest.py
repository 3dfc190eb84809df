"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from docketsync.adapters.clients.docketwise import DocketwiseClient
from docketsync.adapters.clients.fetch import RateLimitedFetcher
from docketsync.adapters.db.facade import DB

BASE_URL = "https://docketwise.test"


class FakeDocketwise:
    """In-memory Docketwise API served through ``httpx.MockTransport``."""

    def __init__(self, *, page_size: int = 200) -> None:
        self.page_size = page_size
        self.collections: dict[str, list[dict[str, Any]]] = {
            "/users": [],
            "/contacts": [],
            "/matter_types": [],
            "/matter_statuses": [],
            "/matters": [],
        }
        self.details: dict[int, dict[str, Any]] = {}
        self.fail: dict[str, int] = {}
        self.pagination_header = True
        self.requests: list[httpx.Request] = []

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.fail:
            return httpx.Response(self.fail[path], text="remote failure")

        if path.startswith("/matters/"):
            matter = self.details.get(int(path.rsplit("/", 1)[1]))
            if matter is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json=matter)

        records = self.collections.get(path)
        if records is None:
            return httpx.Response(404, text="unknown endpoint")

        page = int(request.url.params.get("page", "1"))
        start = (page - 1) * self.page_size
        chunk = records[start : start + self.page_size]
        headers = {}
        if self.pagination_header:
            has_more = start + self.page_size < len(records)
            total_pages = max(1, -(-len(records) // self.page_size))
            headers["X-Pagination"] = json.dumps(
                {
                    "total": len(records),
                    "next_page": page + 1 if has_more else None,
                    "previous_page": page - 1 if page > 1 else None,
                    "total_pages": total_pages,
                }
            )
        return httpx.Response(200, json=chunk, headers=headers)


@pytest.fixture
def db(tmp_path: Path) -> DB:
    """Create a test database."""
    database = DB(f"sqlite:///{tmp_path / 'test.db'}")
    database.create_schema()
    return database


@pytest.fixture
def fake_api() -> FakeDocketwise:
    return FakeDocketwise()


@pytest.fixture
def sleeps() -> list[float]:
    """Every delay requested by a fetcher built with ``make_client``."""
    return []


@pytest.fixture
def make_client(
    fake_api: FakeDocketwise, sleeps: list[float]
) -> Callable[..., DocketwiseClient]:
    def _make(*, page_size: int = 200, max_retries: int = 3) -> DocketwiseClient:
        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        fake_api.page_size = page_size
        http_client = httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(fake_api.handler)
        )
        fetcher = RateLimitedFetcher(
            http_client,
            max_retries=max_retries,
            page_size=page_size,
            sleep=fake_sleep,
        )
        return DocketwiseClient(fetcher)

    return _make


@pytest.fixture
def seed_remote(fake_api: FakeDocketwise) -> Callable[[], None]:
    """Fill the fake API with a small, consistent firm."""

    def _seed() -> None:
        fake_api.collections["/matter_statuses"] = [
            {"id": 501, "name": "Case Filed", "duration": 30, "sort": 1},
            {"id": 502, "name": "RFE Received", "duration": 14, "sort": 2},
        ]
        fake_api.collections["/matter_types"] = [
            {
                "id": 301,
                "name": "H-1B",
                "category": "Employment",
                "matter_statuses": [
                    {"id": 501, "name": "Case Filed", "duration": 30, "sort": 1},
                    {"id": 503, "name": "Drafting", "duration": 7, "sort": 0},
                ],
            }
        ]
        fake_api.collections["/users"] = [
            {
                "id": 11,
                "email": "ana@firm.test",
                "attorney_profile": {"first_name": "Ana", "last_name": "Ruiz"},
            },
            {"id": 12, "email": "paralegal@firm.test"},
        ]
        fake_api.collections["/contacts"] = [
            {"id": 21, "first_name": "Li", "last_name": "Wei", "lead": False},
            {"id": 22, "company_name": "Acme Corp"},
        ]
        fake_api.collections["/matters"] = [
            {
                "id": 1001,
                "title": "Wei H-1B",
                "client_id": 21,
                "attorney_id": 11,
                "matter_type_id": 301,
                "matter_status_id": 501,
                "archived": False,
            },
            {
                "id": 1002,
                "title": "Acme PERM",
                "client_id": 22,
                "attorney_id": 12,
                "status": "Waiting on client",
                "archived": False,
            },
        ]
        fake_api.details = {
            1001: {
                **fake_api.collections["/matters"][0],
                "user_ids": [12],
                "matter_status_id": 502,
            },
            1002: {
                **fake_api.collections["/matters"][1],
                "assignee": {"id": 13, "name": "Outside Counsel"},
            },
        }

    return _seed
