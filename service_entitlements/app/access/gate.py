"""
Access gate decisions derived from a resolved record.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import AccessRecord, AccessType


COUNTDOWN_WARNING_DAYS = 7
COUNTDOWN_CRITICAL_DAYS = 3


class Posture(str, Enum):
    LOADING = "loading"
    GRANTED = "granted"
    DENIED = "denied"


class Banner(str, Enum):
    NONE = "none"
    TRIAL_COUNTDOWN = "trial_countdown"
    TRIAL_ENDED = "trial_ended"
    QUOTA_PRESSURE = "quota_pressure"
    UPSELL = "upsell"
    BETA_BADGE = "beta_badge"


class Urgency(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class GateDecision:
    posture: Posture
    banner: Banner = Banner.NONE
    urgency: Optional[Urgency] = None
    days_remaining: Optional[int] = None
    member_number: Optional[int] = None

    @property
    def renders_protected_content(self) -> bool:
        return self.posture == Posture.GRANTED


def countdown_urgency(days_remaining: int) -> Urgency:
    if days_remaining <= COUNTDOWN_CRITICAL_DAYS:
        return Urgency.CRITICAL
    if days_remaining <= COUNTDOWN_WARNING_DAYS:
        return Urgency.WARNING
    return Urgency.INFO


def decide(record: Optional[AccessRecord]) -> GateDecision:
    """Posture and advisory banner for a record; None means still resolving."""
    if record is None:
        return GateDecision(posture=Posture.LOADING)
    if not record.has_access:
        return GateDecision(posture=Posture.DENIED)

    access_type = record.access_type
    days = record.days_remaining

    if access_type == AccessType.REVERSE_TRIAL and days is not None:
        if days <= 0:
            return GateDecision(Posture.GRANTED, Banner.TRIAL_ENDED, Urgency.CRITICAL, days_remaining=0)
        return GateDecision(Posture.GRANTED, Banner.TRIAL_COUNTDOWN, countdown_urgency(days), days_remaining=days)

    if access_type in (AccessType.TRIAL, AccessType.FREE_TRIAL) and days is not None:
        if days <= 0:
            return GateDecision(Posture.GRANTED, Banner.TRIAL_ENDED, Urgency.CRITICAL, days_remaining=0)
        if days <= COUNTDOWN_WARNING_DAYS:
            return GateDecision(Posture.GRANTED, Banner.TRIAL_COUNTDOWN, countdown_urgency(days), days_remaining=days)
        return GateDecision(Posture.GRANTED)

    if access_type == AccessType.FREE_LITE:
        return GateDecision(Posture.GRANTED, Banner.QUOTA_PRESSURE, Urgency.WARNING)

    if access_type == AccessType.FREE:
        return GateDecision(Posture.GRANTED, Banner.UPSELL, Urgency.INFO)

    if access_type == AccessType.BETA:
        return GateDecision(Posture.GRANTED, Banner.BETA_BADGE, member_number=record.member_number)

    return GateDecision(Posture.GRANTED)
