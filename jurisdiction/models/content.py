# jurisdiction/models/content.py
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from jurisdiction.models.hierarchy import utcnow

TARGET_PREFIX = "target_"


class ContentType(str, Enum):
    BULLETINS = "bulletins"
    SURVEYS = "surveys"
    VOTING_ITEMS = "voting_items"
    REPORTS = "reports"
    SUBSCRIPTION_PLANS = "subscription_plans"


class ContentTarget(BaseModel):
    """
    The jurisdiction a content record is scoped to.

    Mirrors all three families in one flat set. Broader pointers may be left
    empty while a more specific one is set; they are filled in at write time.
    """

    target_national_level_id: Optional[str] = None
    target_region_id: Optional[str] = None
    target_locality_id: Optional[str] = None
    target_admin_unit_id: Optional[str] = None
    target_district_id: Optional[str] = None
    target_expatriate_region_id: Optional[str] = None
    target_sector_national_level_id: Optional[str] = None
    target_sector_region_id: Optional[str] = None
    target_sector_locality_id: Optional[str] = None
    target_sector_admin_unit_id: Optional[str] = None
    target_sector_district_id: Optional[str] = None

    def pointers(self) -> Dict[str, Optional[str]]:
        """Target values keyed by the hierarchy pointer they mirror."""
        return {
            name[len(TARGET_PREFIX):]: value
            for name, value in self.model_dump().items()
        }

    def get(self, pointer: str) -> Optional[str]:
        return getattr(self, TARGET_PREFIX + pointer, None)

    @classmethod
    def from_pointers(cls, pointers: Dict[str, Optional[str]]) -> "ContentTarget":
        return cls(**{TARGET_PREFIX + k: v for k, v in pointers.items()})


class ContentFields(BaseModel):
    title: str
    body: Optional[str] = None
    published: bool = False
    created_by_id: str
    target: ContentTarget = Field(default_factory=ContentTarget)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ContentRecord(ContentFields):
    id: str
    content_type: ContentType


def _target_indexes():
    return [
        IndexModel([("created_by_id", ASCENDING)], name="created_by_id"),
        IndexModel([("target.target_region_id", ASCENDING)], name="target_region"),
        IndexModel(
            [("target.target_expatriate_region_id", ASCENDING)],
            name="target_expatriate_region",
        ),
    ]


class _ContentDocument(Document, ContentFields):
    content_type: ClassVar[Optional[ContentType]] = None

    def to_record(self) -> ContentRecord:
        data = self.model_dump(include=set(ContentFields.model_fields))
        data["id"] = str(self.id)
        data["content_type"] = self.content_type
        return ContentRecord.model_validate(data)


class Bulletin(_ContentDocument):
    content_type: ClassVar[ContentType] = ContentType.BULLETINS

    class Settings:
        name = "bulletins"
        indexes = _target_indexes()


class Survey(_ContentDocument):
    content_type: ClassVar[ContentType] = ContentType.SURVEYS

    class Settings:
        name = "surveys"
        indexes = _target_indexes()


class VotingItem(_ContentDocument):
    content_type: ClassVar[ContentType] = ContentType.VOTING_ITEMS

    class Settings:
        name = "voting_items"
        indexes = _target_indexes()


class Report(_ContentDocument):
    content_type: ClassVar[ContentType] = ContentType.REPORTS

    class Settings:
        name = "reports"
        indexes = _target_indexes()


class SubscriptionPlan(_ContentDocument):
    content_type: ClassVar[ContentType] = ContentType.SUBSCRIPTION_PLANS

    class Settings:
        name = "subscription_plans"
        indexes = _target_indexes()


CONTENT_DOCUMENTS = {
    ContentType.BULLETINS: Bulletin,
    ContentType.SURVEYS: Survey,
    ContentType.VOTING_ITEMS: VotingItem,
    ContentType.REPORTS: Report,
    ContentType.SUBSCRIPTION_PLANS: SubscriptionPlan,
}
