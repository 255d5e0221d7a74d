import logging
from datetime import datetime, timezone
from typing import Literal, Optional, Protocol

import redis
from pydantic import BaseModel, Field, ValidationError, field_validator

from .analyzer.priority import PRIORITY_WEIGHTS, TIER_1, TIER_2, TIER_3
from .config import OVERRIDE_TTL, REDIS_URL
from .exceptions import OverrideStoreError
from .urls import crawl_key

logger = logging.getLogger(__name__)

PriorityTier = Literal["Tier1", "Tier2", "Tier3"]

# a Tier1 share above this draws a warning when validating overrides
TIER_1_WARNING_RATIO = 0.5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_http(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError("URL must start with http:// or https://")
    return v


class OverrideRequest(BaseModel):
    page_url: str
    priority: PriorityTier
    reason: Optional[str] = None

    @field_validator("page_url")
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        return _require_http(v)


class PageClassificationOverride(BaseModel):
    user_id: str
    audit_id: str
    page_url: str
    priority: PriorityTier
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator("page_url")
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        return _require_http(v)


class OverrideRepository(Protocol):
    def create(self, override: PageClassificationOverride) -> PageClassificationOverride: ...

    def update(
        self, audit_id: str, page_url: str, priority: str, reason: Optional[str] = None
    ) -> Optional[PageClassificationOverride]: ...

    def delete(self, audit_id: str, page_url: str) -> bool: ...

    def get_by_audit_id(self, audit_id: str) -> list[PageClassificationOverride]: ...

    def get_by_user_id(self, user_id: str) -> list[PageClassificationOverride]: ...

    def get_by_audit_and_page(self, audit_id: str, page_url: str) -> Optional[PageClassificationOverride]: ...

    def upsert(self, override: PageClassificationOverride) -> PageClassificationOverride: ...

    def delete_by_audit_id(self, audit_id: str) -> int: ...


class InMemoryOverrideRepository:
    """Process-local store keyed by (audit_id, page_url)."""

    def __init__(self):
        self._items: dict[tuple[str, str], PageClassificationOverride] = {}

    def create(self, override: PageClassificationOverride) -> PageClassificationOverride:
        key = (override.audit_id, override.page_url)
        if key in self._items:
            raise ValueError(f"Override already exists for {override.page_url} in audit {override.audit_id}")
        self._items[key] = override
        return override

    def update(self, audit_id, page_url, priority, reason=None):
        existing = self._items.get((audit_id, page_url))
        if existing is None:
            return None
        updated = existing.model_copy(update={"priority": priority, "reason": reason, "updated_at": _utc_now()})
        self._items[(audit_id, page_url)] = updated
        return updated

    def delete(self, audit_id, page_url):
        return self._items.pop((audit_id, page_url), None) is not None

    def get_by_audit_id(self, audit_id):
        return [o for (a, _), o in self._items.items() if a == audit_id]

    def get_by_user_id(self, user_id):
        return [o for o in self._items.values() if o.user_id == user_id]

    def get_by_audit_and_page(self, audit_id, page_url):
        return self._items.get((audit_id, page_url))

    def upsert(self, override):
        existing = self._items.get((override.audit_id, override.page_url))
        if existing is not None:
            override = override.model_copy(update={"created_at": existing.created_at, "updated_at": _utc_now()})
        self._items[(override.audit_id, override.page_url)] = override
        return override

    def delete_by_audit_id(self, audit_id):
        keys = [k for k in self._items if k[0] == audit_id]
        for key in keys:
            del self._items[key]
        return len(keys)


class RedisOverrideRepository:
    """
    Redis layout:
      overrides:audit:<audit_id>   hash  page_url -> override JSON
      overrides:user:<user_id>     set   "<audit_id>|<page_url>"
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL, ttl: int = OVERRIDE_TTL):
        self.ttl = ttl
        self.client = client if client is not None else self._connect(url)

    @staticmethod
    def _connect(url: str) -> redis.Redis:
        try:
            client = redis.from_url(url, decode_responses=True, socket_connect_timeout=2)
            client.ping()
        except redis.RedisError as exc:
            logger.warning("Redis unavailable for overrides: %s", exc)
            raise OverrideStoreError(f"Redis unavailable at {url}: {exc}") from exc
        return client

    @staticmethod
    def _audit_key(audit_id: str) -> str:
        return f"overrides:audit:{audit_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"overrides:user:{user_id}"

    def _load(self, raw: Optional[str]) -> Optional[PageClassificationOverride]:
        if not raw:
            return None
        try:
            return PageClassificationOverride.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable override record: %s", exc)
            return None

    def _write(self, override: PageClassificationOverride) -> None:
        audit_key = self._audit_key(override.audit_id)
        user_key = self._user_key(override.user_id)
        try:
            pipe = self.client.pipeline()
            pipe.hset(audit_key, override.page_url, override.model_dump_json())
            pipe.sadd(user_key, f"{override.audit_id}|{override.page_url}")
            if self.ttl:
                pipe.expire(audit_key, self.ttl)
                pipe.expire(user_key, self.ttl)
            pipe.execute()
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override write failed: {exc}") from exc

    def get_by_audit_and_page(self, audit_id, page_url):
        try:
            raw = self.client.hget(self._audit_key(audit_id), page_url)
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override read failed: {exc}") from exc
        return self._load(raw)

    def create(self, override):
        if self.get_by_audit_and_page(override.audit_id, override.page_url) is not None:
            raise ValueError(f"Override already exists for {override.page_url} in audit {override.audit_id}")
        self._write(override)
        return override

    def update(self, audit_id, page_url, priority, reason=None):
        existing = self.get_by_audit_and_page(audit_id, page_url)
        if existing is None:
            return None
        updated = existing.model_copy(update={"priority": priority, "reason": reason, "updated_at": _utc_now()})
        self._write(updated)
        return updated

    def upsert(self, override):
        existing = self.get_by_audit_and_page(override.audit_id, override.page_url)
        if existing is not None:
            override = override.model_copy(update={"created_at": existing.created_at, "updated_at": _utc_now()})
        self._write(override)
        return override

    def delete(self, audit_id, page_url):
        existing = self.get_by_audit_and_page(audit_id, page_url)
        if existing is None:
            return False
        try:
            pipe = self.client.pipeline()
            pipe.hdel(self._audit_key(audit_id), page_url)
            pipe.srem(self._user_key(existing.user_id), f"{audit_id}|{page_url}")
            pipe.execute()
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override delete failed: {exc}") from exc
        return True

    def get_by_audit_id(self, audit_id):
        try:
            raw_items = self.client.hgetall(self._audit_key(audit_id))
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override read failed: {exc}") from exc
        loaded = (self._load(raw) for raw in raw_items.values())
        return [o for o in loaded if o is not None]

    def get_by_user_id(self, user_id):
        try:
            refs = self.client.smembers(self._user_key(user_id))
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override read failed: {exc}") from exc
        found = []
        for ref in sorted(refs):
            audit_id, _, page_url = ref.partition("|")
            override = self.get_by_audit_and_page(audit_id, page_url)
            if override is not None:
                found.append(override)
        return found

    def delete_by_audit_id(self, audit_id):
        overrides = self.get_by_audit_id(audit_id)
        try:
            pipe = self.client.pipeline()
            for o in overrides:
                pipe.srem(self._user_key(o.user_id), f"{audit_id}|{o.page_url}")
            pipe.delete(self._audit_key(audit_id))
            pipe.execute()
        except redis.RedisError as exc:
            raise OverrideStoreError(f"Override delete failed: {exc}") from exc
        return len(overrides)


class OverrideService:
    """Manual page-priority overrides for an audit, consumed by the enhanced analyzer."""

    def __init__(self, repository: OverrideRepository):
        self.repository = repository

    def create_override(self, user_id: str, audit_id: str, request: OverrideRequest) -> PageClassificationOverride:
        override = PageClassificationOverride(user_id=user_id, audit_id=audit_id, **request.model_dump())
        created = self.repository.create(override)
        logger.info("Override created: %s -> %s (audit %s)", request.page_url, request.priority, audit_id)
        return created

    def update_override(
        self, audit_id: str, page_url: str, priority: str, reason: Optional[str] = None
    ) -> Optional[PageClassificationOverride]:
        return self.repository.update(audit_id, page_url, priority, reason)

    def delete_override(self, audit_id: str, page_url: str) -> bool:
        return self.repository.delete(audit_id, page_url)

    def get_audit_overrides(self, audit_id: str) -> dict[str, str]:
        """page_url -> priority tier, the form page_priority() consumes."""
        return {o.page_url: o.priority for o in self.repository.get_by_audit_id(audit_id)}

    def get_user_overrides(self, user_id: str) -> list[PageClassificationOverride]:
        return self.repository.get_by_user_id(user_id)

    def batch_upsert_overrides(
        self, user_id: str, audit_id: str, requests: list[OverrideRequest]
    ) -> list[PageClassificationOverride]:
        return [
            self.repository.upsert(
                PageClassificationOverride(user_id=user_id, audit_id=audit_id, **request.model_dump())
            )
            for request in requests
        ]

    def clear_audit_overrides(self, audit_id: str) -> int:
        removed = self.repository.delete_by_audit_id(audit_id)
        logger.info("Cleared %d overrides for audit %s", removed, audit_id)
        return removed

    @staticmethod
    def priority_options() -> list[dict]:
        return [
            {
                "value": TIER_1,
                "label": "High Priority (Tier 1)",
                "description": "Homepage, primary service pages, key landing pages",
                "weight": PRIORITY_WEIGHTS[TIER_1],
            },
            {
                "value": TIER_2,
                "label": "Medium Priority (Tier 2)",
                "description": "Category pages, secondary services, about/contact pages",
                "weight": PRIORITY_WEIGHTS[TIER_2],
            },
            {
                "value": TIER_3,
                "label": "Low Priority (Tier 3)",
                "description": "Blog posts, news articles, archive pages, utility pages",
                "weight": PRIORITY_WEIGHTS[TIER_3],
            },
        ]

    def validate_overrides(self, audit_id: str, known_urls: list[str]) -> dict:
        overrides = self.repository.get_by_audit_id(audit_id)
        known = {crawl_key(url) for url in known_urls}
        warnings = [
            f'Override for "{o.page_url}" points to a page that was not found in the audit'
            for o in overrides if crawl_key(o.page_url) not in known
        ]

        tier1 = sum(1 for o in overrides if o.priority == TIER_1)
        if overrides and tier1 / len(overrides) > TIER_1_WARNING_RATIO:
            warnings.append(
                f"High proportion of pages ({round(tier1 / len(overrides) * 100)}%) set to Tier 1 priority. "
                "Consider reserving Tier 1 for only the most critical pages."
            )
        if tier1 == 0 and len(overrides) > 3:
            warnings.append("No pages set to Tier 1 priority. Consider setting your most important pages to high priority.")

        return {"valid": True, "errors": [], "warnings": warnings}

    def get_override_stats(self, audit_id: str) -> dict:
        overrides = self.repository.get_by_audit_id(audit_id)
        total = len(overrides)
        counts = {tier: sum(1 for o in overrides if o.priority == tier) for tier in (TIER_1, TIER_2, TIER_3)}
        return {
            "totalOverrides": total,
            "tier1Count": counts[TIER_1],
            "tier2Count": counts[TIER_2],
            "tier3Count": counts[TIER_3],
            "distribution": {
                f"tier{i}Percentage": round(counts[tier] / total * 100) if total else 0
                for i, tier in enumerate((TIER_1, TIER_2, TIER_3), start=1)
            },
        }
