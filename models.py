from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class FailureReason(str, Enum):
    """Why an ingestion did not produce a pending submission."""

    INVALID_URL = "invalid_url"
    SOURCE_UNAVAILABLE = "source_unavailable"
    MISSING_TITLE = "missing_title"
    NO_IMAGES_FOUND = "no_images_found"
    IMAGES_NOT_RELOCATED = "images_not_relocated"
    PERSISTENCE_ERROR = "persistence_error"


# This is the canonical spec vocabulary shared by submissions and catalog entries.
# Every field mapping target must be one of these names.
class SpecFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Network / launch
    network_technology: str | None = None
    launch_announced: str | None = None
    launch_status: str | None = None
    # Body
    body_dimensions: str | None = None
    body_weight: str | None = None
    body_build: str | None = None
    body_sim: str | None = None
    # Display
    display_type: str | None = None
    display_size: str | None = None
    display_resolution: str | None = None
    display_protection: str | None = None
    # Platform
    platform_os: str | None = None
    platform_chipset: str | None = None
    platform_cpu: str | None = None
    platform_gpu: str | None = None
    # Memory
    memory_internal: str | None = None
    # Cameras
    main_camera: str | None = None
    main_camera_features: str | None = None
    main_camera_video: str | None = None
    selfie_camera: str | None = None
    selfie_camera_video: str | None = None
    # Sound
    sound_loudspeaker: str | None = None
    sound_3_5mm_jack: str | None = None
    # Comms
    comms_wlan: str | None = None
    comms_bluetooth: str | None = None
    comms_positioning: str | None = None
    comms_nfc: str | None = None
    comms_radio: str | None = None
    comms_usb: str | None = None
    # Features
    features_sensors: str | None = None
    # Battery
    battery_type: str | None = None
    battery_charging: str | None = None
    # Misc
    misc_colors: str | None = None
    misc_models: str | None = None
    misc_price: str | None = None


SPEC_FIELD_NAMES: tuple[str, ...] = tuple(SpecFields.model_fields)

# Commerce fields a reviewer fills in before approval
COMMERCE_FIELD_NAMES: tuple[str, ...] = ("short_review", "buy_link_1", "buy_link_2")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapedSubmission(SpecFields):
    """A scrape result waiting for human review."""

    id: str
    source_url: str
    title: str
    category: str = "Phones"
    image_urls: list[str] = []
    short_review: str | None = None
    buy_link_1: str | None = None
    buy_link_2: str | None = None
    # Spec rows that had no field mapping, keyed by "{group}: {label}"
    extra_fields: dict[str, str] = {}
    status: SubmissionStatus = SubmissionStatus.PENDING
    added_by: str
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("extra_fields", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def is_approved(self) -> bool:
        return self.status == SubmissionStatus.APPROVED


# Fields a reviewer may change on a pending submission
EDITABLE_SUBMISSION_FIELDS: frozenset[str] = frozenset(
    SPEC_FIELD_NAMES + COMMERCE_FIELD_NAMES + ("title", "category", "image_urls", "source_url")
)


class CatalogEntry(SpecFields):
    """A promoted, publicly visible product record."""

    id: str | None = None
    title: str
    category: str | None = None
    short_review: str | None = None
    buy_link_1: str | None = None
    buy_link_2: str | None = None
    image_url: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    # Submission this entry was promoted from
    source_submission_id: str | None = None


# Columns written when promoting a submission (the store assigns id / created_at)
CATALOG_WRITE_FIELDS: tuple[str, ...] = tuple(
    name for name in CatalogEntry.model_fields if name not in ("id", "created_at")
)


class IngestSuccess(BaseModel):
    success: Literal[True] = True
    data: ScrapedSubmission


class IngestFailure(BaseModel):
    success: Literal[False] = False
    message: str
    reason: FailureReason
    error_details: dict[str, Any] | None = None


IngestResult = IngestSuccess | IngestFailure


class ReviewEntry(BaseModel):
    """One line of the review queue after title consolidation."""

    submission: ScrapedSubmission
    # Id of the submission whose field values were merged in, if any
    merged_from: str | None = None
    # Other pending submissions with the same title folded into this entry
    duplicate_ids: list[str] = []


class SweepReport(BaseModel):
    """Outcome of a promotion consistency sweep."""

    completed: list[str] = []  # pending submissions flipped to approved
    duplicate_entries: list[str] = []  # extra linked catalog entries removed
    orphaned_entries: list[str] = []  # catalog entries whose submission is gone
    approved_without_entry: list[str] = []  # approved submissions with no catalog entry
