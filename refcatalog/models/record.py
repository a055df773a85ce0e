"""
Reference record models.
Normalizes raw catalog payloads (listing API, semantic search) into one immutable shape.
"""

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from typing import Optional, Dict, Any, Mapping
from dataclasses import dataclass


# Alternative keys used by different backends for the same field
FIELD_ALIASES: Dict[str, tuple] = {
    "id": ("id", "dbId", "db_id"),
    "sku": ("sku", "code"),
    "category_full_path": ("category_full_path", "categoryFullPath"),
    "is_global": ("is_global", "isGlobal"),
    "matched_keyword": ("matched_keyword", "matchedKeyword"),
}


def _first_present(payload: Mapping[str, Any], keys: tuple) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


class ReferenceRecord(BaseModel):
    """
    One catalog entry (material or work) as held by the local replica.

    Records are frozen: a sync replaces them wholesale, nobody edits them in place.
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
    )

    id: str
    name: str = ""
    sku: Optional[str] = None
    unit: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    category_full_path: Optional[str] = None
    supplier: Optional[str] = None
    image: Optional[str] = None
    is_global: bool = False

    # Lowercase concatenation of the searchable fields
    search_blob: str = ""

    # Set only on results coming from the semantic backend
    matched_keyword: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Ids arrive as ints from SQL backends and strings from vector backends."""
        if v is None:
            raise ValueError("record id is required")
        value = str(v).strip()
        if not value:
            raise ValueError("record id is required")
        return value

    @field_validator("sku", mode="before")
    @classmethod
    def coerce_sku(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v)

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[float]:
        if v is None or v == "":
            return None
        return float(v)

    @field_validator("is_global", mode="before")
    @classmethod
    def coerce_is_global(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return bool(v)

    @model_validator(mode="before")
    @classmethod
    def build_search_blob(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("search_blob"):
            parts = [data.get(key) for key in ("name", "sku", "supplier", "category")]
            data = dict(data)
            data["search_blob"] = " ".join(
                str(part).strip() if part is not None else "" for part in parts
            ).lower()
        return data

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReferenceRecord":
        """
        Build a record from any backend payload.

        Args:
            payload: Raw dict from the listing API, the semantic search API or storage

        Returns:
            Normalized ReferenceRecord

        Raises:
            pydantic.ValidationError: If the payload has no usable id
        """
        return cls(
            id=_first_present(payload, FIELD_ALIASES["id"]),
            name=payload.get("name") or "",
            sku=_first_present(payload, FIELD_ALIASES["sku"]),
            unit=payload.get("unit"),
            price=payload.get("price"),
            category=payload.get("category"),
            category_full_path=_first_present(payload, FIELD_ALIASES["category_full_path"]),
            supplier=payload.get("supplier"),
            image=payload.get("image"),
            is_global=_first_present(payload, FIELD_ALIASES["is_global"]) or False,
            search_blob=payload.get("search_blob") or "",
            matched_keyword=_first_present(payload, FIELD_ALIASES["matched_keyword"]),
        )

    def to_storage(self) -> Dict[str, Any]:
        """Columns persisted in the replica (search annotations excluded)."""
        return self.model_dump(exclude={"matched_keyword"})


@dataclass(frozen=True)
class SyncMarker:
    """Timestamp of the last successful full sync."""

    last_synced_at_millis: int

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["SyncMarker"]:
        """Parse the epoch-millisecond string kept in the metadata slot."""
        if raw is None:
            return None
        try:
            return cls(last_synced_at_millis=int(raw))
        except (TypeError, ValueError):
            return None

    def serialize(self) -> str:
        return str(self.last_synced_at_millis)

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.last_synced_at_millis

    def is_stale(self, now_ms: float, window_ms: float) -> bool:
        """True once the marker is older than the freshness window."""
        return self.age_ms(now_ms) > window_ms
