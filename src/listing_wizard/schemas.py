"""
Pydantic schemas for listing projects, usage metering and remote service results
Stored records use the camelCase aliases; Python code uses the snake_case names.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """UTC calendar month key in YYYY-MM format"""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m")


class ShippingPolicy(str, Enum):
    """Handling time promised to buyers"""
    SAME_DAY = "SAME_DAY"
    D2_5 = "D2_5"
    D15_20 = "D15_20"


DEFAULT_SHIPPING_POLICY = ShippingPolicy.D2_5


class ProjectStatus(str, Enum):
    """Project lifecycle flag"""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class RecordModel(BaseModel):
    """Base for persisted records: camelCase on disk, snake_case in code"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=False)

    def to_record(self) -> Dict[str, Any]:
        """JSON-serializable dict keyed by the stored (alias) names"""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        return cls.model_validate(record)


class Project(RecordModel):
    """A single listing being built by the wizard"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str = Field(..., alias="ownerId", min_length=1)
    title: str = ""
    description: str = ""
    images: List[str] = Field(default_factory=list)
    store_name: str = Field("", alias="storeName")
    store_logo: Optional[str] = Field(None, alias="storeLogo")
    shipping_policy: Optional[ShippingPolicy] = Field(DEFAULT_SHIPPING_POLICY, alias="shippingPolicy")
    seo_keywords: List[str] = Field(default_factory=list, alias="seoKeywords")
    highlights: List[str] = Field(default_factory=list)
    source_url: Optional[str] = Field(None, alias="sourceUrl")
    status: ProjectStatus = ProjectStatus.DRAFT
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    @field_validator("images", mode="before")
    @classmethod
    def normalize_images(cls, v):
        """Accept bare URLs or {url: ...} objects; drop anything else"""
        if v is None:
            return []
        images = []
        for item in v:
            if isinstance(item, str):
                images.append(item)
            elif isinstance(item, dict) and isinstance(item.get("url"), str):
                images.append(item["url"])
        return images

    @field_validator("seo_keywords", mode="before")
    @classmethod
    def dedupe_keywords(cls, v):
        """Keywords are a set: keep the first occurrence, preserve order"""
        if v is None:
            return []
        seen = []
        for keyword in v:
            keyword = str(keyword).strip()
            if keyword and keyword not in seen:
                seen.append(keyword)
        return seen

    @field_validator("highlights", mode="before")
    @classmethod
    def clean_highlights(cls, v):
        if v is None:
            return []
        return [str(h).strip() for h in v if str(h).strip()]

    def monogram(self) -> str:
        """Initials used in place of a missing store logo"""
        return "".join(word[0].upper() for word in self.store_name.split() if word)[:2]


# Fields a caller is allowed to write through a partial update
IMMUTABLE_PROJECT_FIELDS = {"id", "created_at", "owner_id"}


def resolve_project_field(key: str) -> Optional[str]:
    """Map a snake_case name or camelCase alias to the Project field name"""
    if key in Project.model_fields:
        return key
    for name, info in Project.model_fields.items():
        if info.alias == key:
            return name
    return None


class UsageRecord(RecordModel):
    """Usage counters for one user and one UTC calendar month"""

    user_id: str = Field(..., alias="userId")
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    listings_generated: int = Field(0, alias="listingsGenerated", ge=0)
    ai_requests_made: int = Field(0, alias="aiRequestsMade", ge=0)
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")


class Plan(str, Enum):
    """Subscription plan"""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class PlanLimits(BaseModel):
    """Monthly limits of a plan (-1 means unlimited)"""

    model_config = ConfigDict(populate_by_name=True)

    listings: int = Field(..., ge=-1)
    ai_requests: int = Field(..., alias="aiRequests", ge=-1)


class SubscriptionRecord(RecordModel):
    """The user's active subscription"""

    user_id: str = Field(..., alias="userId")
    plan: Plan = Plan.FREE
    status: str = "active"
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    current_period_start: Optional[datetime] = Field(None, alias="currentPeriodStart")
    current_period_end: Optional[datetime] = Field(None, alias="currentPeriodEnd")


class ExtractedProduct(BaseModel):
    """Best-effort product data pulled from a product page; every field optional"""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    brand: Optional[str] = None
    price: Optional[str] = None
    images: List[str] = Field(default_factory=list)

    @field_validator("title", "description", "brand", "price", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None:
            return None
        if isinstance(v, (list, dict)):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("features", "images", mode="before")
    @classmethod
    def coerce_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if isinstance(v, list):
            return [str(item).strip() for item in v if isinstance(item, (str, int, float)) and str(item).strip()]
        return []


class SEOOptimization(BaseModel):
    """Keyword and highlight suggestions for a listing"""

    model_config = ConfigDict(extra="ignore")

    keywords: List[str] = Field(default_factory=list)
    highlights: List[str] = Field(default_factory=list)
    explanation: str = ""

    @field_validator("keywords", "highlights", mode="before")
    @classmethod
    def coerce_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        if isinstance(v, list):
            return [str(item).strip() for item in v if isinstance(item, (str, int, float)) and str(item).strip()]
        return []

    @field_validator("explanation", mode="before")
    @classmethod
    def coerce_explanation(cls, v):
        return "" if v is None else str(v)


class UploadedImage(BaseModel):
    """Result of an image upload"""
    url: str
