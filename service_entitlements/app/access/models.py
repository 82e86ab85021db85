"""
Access data models for Entitlements Service.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel


TRIAL_DAYS = 14
TRIAL_PLAN = "professional"


class AccessType(str, Enum):
    """Mutually exclusive access tags; exactly one per record."""
    BETA = "beta"
    SUBSCRIPTION = "subscription"
    TRIAL = "trial"
    FREE_TRIAL = "free_trial"
    REVERSE_TRIAL = "reverse_trial"
    FREE_LITE = "free_lite"
    FREE = "free"
    NONE = "none"


class Provenance(str, Enum):
    """Where a resolved record came from. Internal only, never serialized."""
    AUTHORITY = "authority"
    CACHE = "cache"
    LOCAL_FALLBACK = "local_fallback"
    GUEST = "guest"
    NONE = "none"


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class QuotaLimits(_WireModel):
    """Capability caps for the quota-limited tier.

    A constant table, not a usage counter. Fields missing on the wire take the
    most restrictive value.
    """
    tasks_per_day: int = Field(0, ge=0, description="Daily task creation cap")
    calendar_integrations: int = Field(0, ge=0, description="Connected calendar cap")
    scripts: int = Field(0, ge=0, description="Script/template cap")
    ai_assistant: bool = Field(False, description="AI assistant access")
    voice_calls: bool = Field(False, description="Voice call access")
    custom_scripts: bool = Field(False, description="Custom script authoring")
    marketplace: bool = Field(False, description="Script marketplace access")
    team_members: int = Field(1, ge=0, description="Team member seat cap")


LITE_LIMITS = QuotaLimits(
    tasks_per_day=5,
    calendar_integrations=1,
    scripts=3,
    ai_assistant=False,
    voice_calls=False,
    custom_scripts=False,
    marketplace=False,
    team_members=1,
)


class AccessRecord(_WireModel):
    """Resolved entitlement snapshot for one user."""
    has_access: bool = Field(..., description="Whether gated features are usable at all")
    access_type: AccessType = Field(..., description="Active access tag")
    plan: Optional[str] = Field(None, description="Plan identifier for paid or trial-of-paid access")
    member_number: Optional[int] = Field(None, description="Beta tester ordinal")
    trial_end: Optional[datetime] = Field(None, description="End of a time-boxed trial")
    days_remaining: Optional[int] = Field(None, description="Whole days left on a time-boxed type")
    limits: Optional[QuotaLimits] = Field(None, description="Quota caps, present for free_lite")
    reverse_trial_active: Optional[bool] = Field(None, description="True until a reverse trial decays")
    expires_at: Optional[datetime] = Field(None, description="Authority-reported access expiry")
    message: Optional[str] = Field(None, description="Authority-supplied note")

    # Not a field: never read from or written to the wire or the cache
    _provenance: Provenance = PrivateAttr(default=Provenance.AUTHORITY)

    @field_validator("days_remaining")
    @classmethod
    def _clamp_days_remaining(cls, value: Optional[int]) -> Optional[int]:
        # Overdue trials report zero days, never a negative count
        return None if value is None else max(0, value)

    @model_validator(mode="after")
    def _reverse_trial_has_days(self) -> "AccessRecord":
        if self.access_type == AccessType.REVERSE_TRIAL and self.days_remaining is None:
            raise ValueError("reverse_trial requires daysRemaining")
        return self

    @property
    def provenance(self) -> Provenance:
        return self._provenance

    @classmethod
    def denied(cls) -> "AccessRecord":
        return cls(has_access=False, access_type=AccessType.NONE).with_provenance(Provenance.NONE)

    @classmethod
    def reverse_trial(cls, days_remaining: int, provenance: Provenance) -> "AccessRecord":
        return cls(
            has_access=True,
            access_type=AccessType.REVERSE_TRIAL,
            plan=TRIAL_PLAN,
            days_remaining=days_remaining,
            reverse_trial_active=True,
        ).with_provenance(provenance)

    @classmethod
    def free_lite(cls, provenance: Provenance, days_remaining: Optional[int] = None) -> "AccessRecord":
        return cls(
            has_access=True,
            access_type=AccessType.FREE_LITE,
            limits=LITE_LIMITS,
            reverse_trial_active=False,
            days_remaining=days_remaining,
        ).with_provenance(provenance)

    @property
    def is_exhausted_reverse_trial(self) -> bool:
        return (
            self.access_type == AccessType.REVERSE_TRIAL
            and self.days_remaining is not None
            and self.days_remaining <= 0
        )

    def normalized(self) -> "AccessRecord":
        """Return the record with the tier invariants applied.

        An exhausted reverse trial becomes ``free_lite``; a ``free_lite``
        record always grants access and always carries limits.
        """
        if self.is_exhausted_reverse_trial:
            return AccessRecord.free_lite(self.provenance)
        if self.access_type == AccessType.FREE_LITE and (self.limits is None or not self.has_access):
            return self.model_copy(update={"has_access": True, "limits": self.limits or LITE_LIMITS})
        return self

    def with_provenance(self, provenance: Provenance) -> "AccessRecord":
        record = self.model_copy()
        record._provenance = provenance
        return record

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, omitting absent fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_cache_value(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
