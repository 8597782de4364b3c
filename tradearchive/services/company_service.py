import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select

from tradearchive.core.config import settings
from tradearchive.core.database import AsyncSessionLocal, dialect_insert
from tradearchive.core.exceptions import FetchError
from tradearchive.models.company import Company

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "A"


class CompanyFeedItem(BaseModel):
    """One entry of the exchange's security list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    symbol: str
    security_name: str = Field(alias="securityName")
    name: Optional[str] = None
    active_status: Optional[str] = Field(default=None, alias="activeStatus")


@dataclass(frozen=True)
class CompanyRef:
    id: int
    symbol: str
    security_name: str
    active_status: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return (self.active_status or "").upper() == ACTIVE_STATUS


def normalize_name(name: str) -> str:
    return " ".join(name.split())


class CompanyDirectory:
    """
    Read-only snapshot of the reference store, keyed by security name.

    When several companies share a security name the active one wins, then the
    lowest id.
    """

    def __init__(self, companies: Iterable[CompanyRef]):
        self._by_name: Dict[str, CompanyRef] = {}
        for company in sorted(companies, key=lambda c: (not c.is_active, c.id)):
            self._by_name.setdefault(normalize_name(company.security_name), company)

    def lookup(self, security_name: str) -> Optional[CompanyRef]:
        return self._by_name.get(normalize_name(security_name))

    def __len__(self) -> int:
        return len(self._by_name)


class CompanyService:
    """Load the listed-company feed into the reference store and read it back."""

    BATCH_SIZE = 1000

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        feed_url: str | None = None,
        timeout_sec: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.session_factory = session_factory
        self.feed_url = feed_url or settings.COMPANY_FEED_URL
        self.timeout_sec = (
            settings.FETCH_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self._client = client

    async def fetch_feed(self) -> List[CompanyFeedItem]:
        """Download and validate the security list."""
        try:
            if self._client is not None:
                resp = await self._client.get(self.feed_url, timeout=self.timeout_sec)
                resp.raise_for_status()
                payload = resp.json()
            else:
                async with httpx.AsyncClient(timeout=self.timeout_sec, follow_redirects=True) as client:
                    resp = await client.get(self.feed_url)
                    resp.raise_for_status()
                    payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"HTTP {exc.response.status_code} for company feed",
                url=self.feed_url,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.RequestError, ValueError) as exc:
            raise FetchError(f"Company feed unavailable: {exc}", url=self.feed_url) from exc

        if not isinstance(payload, list):
            raise FetchError("Company feed did not return a JSON array", url=self.feed_url)

        items: List[CompanyFeedItem] = []
        for raw in payload:
            try:
                items.append(CompanyFeedItem.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid company entry %r: %s error(s)", raw, exc.error_count())
        return items

    async def store_companies(self, items: List[CompanyFeedItem]) -> int:
        """Upsert companies by id in a single transaction: all rows or none."""
        if not items:
            return 0

        records = [
            {
                "id": item.id,
                "symbol": item.symbol,
                "security_name": item.security_name,
                "name": item.name,
                "active_status": item.active_status,
                "deleted_at": None,
            }
            for item in items
        ]

        async with self.session_factory() as session:
            insert = dialect_insert(session)
            try:
                for i in range(0, len(records), self.BATCH_SIZE):
                    batch = records[i:i + self.BATCH_SIZE]
                    stmt = insert(Company).values(batch)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[Company.id],
                        set_=self._build_update_map(stmt),
                    )
                    await session.execute(stmt)
                await session.commit()
            except Exception:
                await session.rollback()
                logger.error("Company load rolled back")
                raise

        logger.info("Loaded %s companies into reference store", len(records))
        return len(records)

    async def load_from_feed(self) -> int:
        items = await self.fetch_feed()
        if not items:
            logger.warning("Company feed returned no entries")
            return 0
        return await self.store_companies(items)

    async def load_directory(self) -> CompanyDirectory:
        async with self.session_factory() as session:
            stmt = select(
                Company.id, Company.symbol, Company.security_name, Company.active_status
            ).where(Company.deleted_at.is_(None))
            result = await session.execute(stmt)
            directory = CompanyDirectory(
                CompanyRef(id=row[0], symbol=row[1], security_name=row[2], active_status=row[3])
                for row in result.all()
            )
        logger.info("Company directory ready with %s security names", len(directory))
        return directory

    def _build_update_map(self, stmt: Any) -> Dict[str, Any]:
        excluded = stmt.excluded
        skip = {"id", "created_at", "updated_at"}
        update_map = {
            column.name: getattr(excluded, column.name)
            for column in Company.__table__.columns
            if column.name not in skip
        }
        update_map["updated_at"] = excluded.created_at
        return update_map
