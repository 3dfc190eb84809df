from __future__ import annotations

from datetime import datetime
from typing import Any, Self, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docketsync.adapters.clients.errors import DocketwiseAPIError, DocketwiseClientError
from docketsync.adapters.clients.fetch import RateLimitedFetcher
from docketsync.core.config import SyncConfig


ModelT = TypeVar("ModelT", bound="DocketwiseBaseModel")


class DocketwiseBaseModel(BaseModel):
    """Shared base for Docketwise payload models with a short parse alias."""

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)

    @classmethod
    def parse_many(cls, items: list[dict[str, Any]]) -> list[Self]:
        return [cls.model_validate(item) for item in items]


class AttorneyProfile(DocketwiseBaseModel):
    id: int | None = None
    first_name: str | None = None
    last_name: str | None = None


class DocketwiseUser(DocketwiseBaseModel):
    id: int
    email: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    attorney_profile: AttorneyProfile | None = None

    @property
    def first_name(self) -> str | None:
        return self.attorney_profile.first_name if self.attorney_profile else None

    @property
    def last_name(self) -> str | None:
        return self.attorney_profile.last_name if self.attorney_profile else None


class DocketwiseContact(DocketwiseBaseModel):
    id: int
    first_name: str | None = None
    last_name: str | None = None
    middle_name: str | None = None
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    type: str | None = None
    lead: bool = False
    street_address: str | None = None
    apartment_number: str | None = None
    city: str | None = None
    state: str | None = None
    province: str | None = None
    zip_code: str | None = None
    country: str | None = None


class DocketwiseMatterStatus(DocketwiseBaseModel):
    id: int
    name: str
    duration: int | None = None
    sort: int | None = None


class DocketwiseMatterType(DocketwiseBaseModel):
    id: int
    name: str
    category: str | None = None
    matter_statuses: list[DocketwiseMatterStatus] = Field(default_factory=list)


class NamedRef(DocketwiseBaseModel):
    id: int
    name: str | None = None


class EmbeddedClient(DocketwiseBaseModel):
    id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None


class DocketwiseMatter(DocketwiseBaseModel):
    """A matter as returned by both the list and the detail endpoints.

    The list endpoint omits ``user_ids`` and ``assignee``; the detail endpoint
    fills them in.
    """

    id: int
    title: str | None = None
    number: str | None = None
    description: str | None = None
    client_id: int | None = None
    attorney_id: int | None = None
    user_ids: list[int] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    archived: bool = False
    type: str | None = None
    status: NamedRef | str | None = None
    matter_type: NamedRef | None = None
    matter_type_id: int | None = None
    workflow_stage: NamedRef | None = None
    workflow_stage_id: int | None = None
    matter_status_id: int | None = None
    client: EmbeddedClient | None = None
    assignee: NamedRef | None = None


class DocketwiseClient:
    """Typed access to the Docketwise collections the sync engine needs.

    Collection calls walk every page through ``RateLimitedFetcher`` and raise
    ``DocketwiseAPIError`` when a page fails, so callers can tell a partial
    collection from a complete one.
    """

    def __init__(self, fetcher: RateLimitedFetcher) -> None:
        self._fetcher = fetcher

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DocketwiseClient:
        http_client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.request_timeout_seconds,
            transport=transport,
        )
        fetcher = RateLimitedFetcher(
            http_client,
            max_retries=config.max_retries,
            rate_limit_delay=config.rate_limit_delay_seconds,
            page_size=config.page_size,
            max_pages=config.max_pages,
        )
        return cls(fetcher)

    @property
    def fetcher(self) -> RateLimitedFetcher:
        return self._fetcher

    async def list_users(self, token: str) -> list[DocketwiseUser]:
        return await self._collection(DocketwiseUser, "/users", token)

    async def list_contacts(self, token: str) -> list[DocketwiseContact]:
        return await self._collection(DocketwiseContact, "/contacts", token)

    async def list_matter_types(self, token: str) -> list[DocketwiseMatterType]:
        return await self._collection(DocketwiseMatterType, "/matter_types", token)

    async def list_matter_statuses(self, token: str) -> list[DocketwiseMatterStatus]:
        return await self._collection(
            DocketwiseMatterStatus, "/matter_statuses", token
        )

    async def list_matters(self, token: str) -> list[DocketwiseMatter]:
        return await self._collection(DocketwiseMatter, "/matters", token)

    async def get_matter(self, matter_id: int, token: str) -> DocketwiseMatter:
        """Fetch one matter with full assignee details.

        Raises:
            DocketwiseAPIError: on any non-2xx response, including exhausted
                rate-limit retries
            DocketwiseClientError: if the body is not a matter object
        """
        response = await self._fetcher.get(f"/matters/{matter_id}", token)
        if not response.is_success:
            raise DocketwiseAPIError(
                response.status_code, response.text, url=str(response.request.url)
            )
        try:
            return DocketwiseMatter.parse(response.json())
        except (ValueError, ValidationError) as e:
            raise DocketwiseClientError(
                f"Failed to parse matter {matter_id}: {e}"
            ) from e

    async def aclose(self) -> None:
        await self._fetcher.aclose()

    async def _collection(
        self, model: type[ModelT], endpoint: str, token: str
    ) -> list[ModelT]:
        records = await self._fetcher.load_all_pages_checked(endpoint, token)
        try:
            return model.parse_many(records)
        except ValidationError as e:
            raise DocketwiseClientError(f"Unexpected {endpoint} payload: {e}") from e
