# src/casecorr/normalize/schema.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Scalar identity fields of an ExtractedRecord, in rule-table order.
IDENTITY_FIELDS = ("email", "phone", "name", "username", "password", "ip", "address")


class FieldKind(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    USERNAME = "username"
    NAME = "name"
    NAME_PARTIAL = "name_partial"
    IP = "ip"
    ADDRESS = "address"
    ADDRESS_PARTIAL = "address_partial"


class CorrelationType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    USERNAME = "username"
    IP = "ip"
    ADDRESS = "address"
    NETWORK = "network"
    UNKNOWN = "unknown"


class PatternType(str, Enum):
    USERNAME_REUSE = "username_reuse"
    EMAIL_PATTERN = "email_pattern"
    PASSWORD_PATTERN = "password_pattern"
    IP_RANGE = "ip_range"


class SocialMediaHandle(BaseModel):
    platform: str = Field(..., description="Platform key, e.g. 'telegram'")
    username: str = Field(..., description="Handle on that platform")
    url: Optional[str] = Field(None, description="Profile URL if known")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.platform, self.username)

    class Config:
        frozen = True


class ExtractedRecord(BaseModel):
    """
    One candidate identity fragment pulled from a raw search result row.

    Records are immutable; consolidation always builds a new record.
    """

    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ip: Optional[str] = None
    address: Optional[str] = None
    social_media: List[SocialMediaHandle] = Field(default_factory=list)
    raw_data: Dict[str, Any] = Field(
        default_factory=dict, description="Original key/value pairs plus 'source'"
    )

    @field_validator("social_media")
    @classmethod
    def dedupe_social_media(
        cls, v: List[SocialMediaHandle]
    ) -> List[SocialMediaHandle]:
        seen = set()
        unique = []
        for handle in v:
            if handle.key in seen:
                continue
            seen.add(handle.key)
            unique.append(handle)
        return unique

    @property
    def source(self) -> Optional[str]:
        return self.raw_data.get("source")

    def is_empty(self) -> bool:
        """True when no identity field and no social handle is populated."""
        if self.social_media:
            return False
        for field_name in IDENTITY_FIELDS:
            value = getattr(self, field_name)
            if isinstance(value, str) and value.strip():
                return False
        return True

    class Config:
        frozen = True


class MatchResult(BaseModel):
    is_match: bool
    confidence: int = Field(ge=0, le=100)
    reason: str = ""

    class Config:
        frozen = True


class MatchGroup(BaseModel):
    member_indices: List[int] = Field(
        ..., min_length=2, description="Indices into the input list; anchor first"
    )
    confidence: int = Field(ge=0, le=100)
    match_reason: str = ""

    @property
    def anchor(self) -> int:
        return self.member_indices[0]


class EntityView(BaseModel):
    """
    Flattened collateral data of a persisted entity (target).

    The lists hold raw values; normalization happens at comparison time.
    """

    entity_id: str
    scope_id: Optional[str] = Field(None, description="Owning case/user scope")
    emails: List[str] = Field(default_factory=list)
    phones: List[str] = Field(default_factory=list)
    usernames: List[str] = Field(default_factory=list)
    ips: List[str] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)
    password_hashes: List[str] = Field(default_factory=list)

    @field_validator("entity_id")
    @classmethod
    def validate_entity_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("entity_id must not be empty")
        return v

    @classmethod
    def from_rows(
        cls,
        entity_id: str,
        scope_id: Optional[str] = None,
        credentials: Optional[List[Dict[str, Any]]] = None,
        phone_numbers: Optional[List[Dict[str, Any]]] = None,
        social_media: Optional[List[Dict[str, Any]]] = None,
        network_data: Optional[List[Dict[str, Any]]] = None,
        addresses: Optional[List[Dict[str, Any]]] = None,
    ) -> "EntityView":
        """
        Build a view from the raw collateral rows attached to a target.

        Args:
            entity_id: Target identifier
            scope_id: Case/user scope the target belongs to
            credentials: Rows with 'email' and/or 'password_hash'
            phone_numbers: Rows with 'phone_number'
            social_media: Rows with 'username'
            network_data: Rows with 'ip_address'
            addresses: Rows with 'street_address' and 'city'

        Returns:
            EntityView with empty/missing values skipped.
        """

        def column(rows, key):
            values = []
            for row in rows or []:
                value = row.get(key)
                if isinstance(value, str) and value:
                    values.append(value)
            return values

        address_lines = []
        for row in addresses or []:
            street = row.get("street_address") or ""
            city = row.get("city") or ""
            line = f"{street} {city}".lower().strip()
            if line:
                address_lines.append(line)

        return cls(
            entity_id=entity_id,
            scope_id=scope_id,
            emails=column(credentials, "email"),
            phones=column(phone_numbers, "phone_number"),
            usernames=column(social_media, "username"),
            ips=column(network_data, "ip_address"),
            addresses=address_lines,
            password_hashes=column(credentials, "password_hash"),
        )


class CorrelationResult(BaseModel):
    candidate_id: str
    correlation_type: CorrelationType = CorrelationType.UNKNOWN
    matching_fields: List[str] = Field(default_factory=list)
    confidence_score: int = Field(ge=0, le=100)
    shared_data: Dict[str, List[str]] = Field(default_factory=dict)


class Correlation(BaseModel):
    """Persisted relationship between two entities (unordered pair)."""

    correlation_id: str
    entity_a_id: str
    entity_b_id: str
    correlation_type: CorrelationType = CorrelationType.UNKNOWN
    matching_fields: List[str] = Field(default_factory=list)
    confidence_score: int = Field(ge=0, le=100)
    shared_data: Dict[str, List[str]] = Field(default_factory=dict)
    verified: bool = False
    notes: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def pair_key(self) -> Tuple[str, str]:
        return pair_key(self.entity_a_id, self.entity_b_id)

    def involves(self, entity_id: str) -> bool:
        return entity_id in (self.entity_a_id, self.entity_b_id)


class PatternMatch(BaseModel):
    pattern_id: Optional[str] = None
    pattern_type: PatternType
    pattern_value: str
    matching_entities: List[str] = Field(default_factory=list)
    match_count: int = Field(ge=0)
    confidence_score: int = Field(ge=0, le=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_anomaly: bool = False
    first_seen: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)
    notes: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.pattern_type.value, self.pattern_value)


class SearchResult(BaseModel):
    database_name: str = Field(..., description="Upstream leak database name")
    info_leak: str = ""
    data: List[Dict[str, Any]] = Field(default_factory=list)


def pair_key(entity_a_id: str, entity_b_id: str) -> Tuple[str, str]:
    """Order-independent key for an entity pair."""
    return tuple(sorted((entity_a_id, entity_b_id)))
