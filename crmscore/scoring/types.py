"""
Scoring contracts — input snapshots and results.

Inputs are frozen snapshots. ``coerce()`` turns whatever the caller has
(a dataclass, a dict from a JSON body, a half-filled record) into a clean
snapshot without ever raising: bad numbers become 0, bad dates become None.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


def as_count(value: Any) -> int:
    """Non-negative int, 0 for anything unusable."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return max(0, int(number))


def as_amount(value: Any) -> float:
    """Non-negative float, 0.0 for anything unusable."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(0.0, number)


def as_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def as_utc(value: Any) -> Optional[datetime]:
    """Aware UTC datetime from a datetime or ISO string; naive means UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get(source: Any, key: str, default: Any = None) -> Any:
    if isinstance(source, Mapping):
        return source.get(key, default)
    return getattr(source, key, default)


# ── Lead ──────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LeadEngagement:
    emails_opened: int = 0
    emails_clicked: int = 0
    calls_connected: int = 0

    @classmethod
    def coerce(cls, raw: Any) -> 'LeadEngagement':
        if isinstance(raw, cls):
            return raw
        raw = raw or {}
        return cls(
            emails_opened=as_count(_get(raw, 'emails_opened')),
            emails_clicked=as_count(_get(raw, 'emails_clicked')),
            calls_connected=as_count(_get(raw, 'calls_connected')),
        )


@dataclass(frozen=True)
class LeadScoreInput:
    email: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    status: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = None
    priority: Optional[str] = None
    created_at: Optional[datetime] = None
    engagement: LeadEngagement = field(default_factory=LeadEngagement)

    @classmethod
    def coerce(cls, raw: Any) -> 'LeadScoreInput':
        if raw is None:
            return cls()
        return cls(
            email=as_text(_get(raw, 'email')) or None,
            phone=as_text(_get(raw, 'phone')) or None,
            source=as_text(_get(raw, 'source')).lower() or None,
            status=as_text(_get(raw, 'status')).lower() or None,
            company=as_text(_get(raw, 'company')) or None,
            job_title=as_text(_get(raw, 'job_title')) or None,
            priority=as_text(_get(raw, 'priority')).lower() or None,
            created_at=as_utc(_get(raw, 'created_at')),
            engagement=LeadEngagement.coerce(_get(raw, 'engagement')),
        )


@dataclass(frozen=True)
class Factor:
    name: str
    points: int
    description: str


@dataclass(frozen=True)
class LeadScoreResult:
    score: int
    grade: str
    factors: List[Factor]
    conversion_probability: float
    recommended_action: str
    next_best_step: str
    analyzed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['analyzed_at'] = self.analyzed_at.isoformat()
        return data

    def history_entry(self) -> Dict[str, Any]:
        """Shape stored in a lead's score_history list."""
        return {
            'score': self.score,
            'grade': self.grade,
            'factors': [asdict(f) for f in self.factors],
            'analyzed_at': self.analyzed_at.isoformat(),
        }


# ── Deal ──────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DealEngagement:
    emails_opened: int = 0
    emails_clicked: int = 0
    calls_made: int = 0
    meetings_held: int = 0
    proposals_sent: int = 0

    @classmethod
    def coerce(cls, raw: Any) -> 'DealEngagement':
        if isinstance(raw, cls):
            return raw
        raw = raw or {}
        return cls(
            emails_opened=as_count(_get(raw, 'emails_opened')),
            emails_clicked=as_count(_get(raw, 'emails_clicked')),
            calls_made=as_count(_get(raw, 'calls_made')),
            meetings_held=as_count(_get(raw, 'meetings_held')),
            proposals_sent=as_count(_get(raw, 'proposals_sent')),
        )


@dataclass(frozen=True)
class DealScoreInput:
    stage: Optional[str] = None
    value: float = 0.0
    probability: int = 0
    expected_close_date: Optional[datetime] = None
    engagement: DealEngagement = field(default_factory=DealEngagement)
    activities: int = 0

    @classmethod
    def coerce(cls, raw: Any) -> 'DealScoreInput':
        if raw is None:
            return cls()
        activities = _get(raw, 'activities')
        if isinstance(activities, (list, tuple)):
            activity_count = len(activities)
        else:
            activity_count = as_count(activities)
        return cls(
            stage=as_text(_get(raw, 'stage')).lower() or None,
            value=as_amount(_get(raw, 'value')),
            probability=min(100, as_count(_get(raw, 'probability'))),
            expected_close_date=as_utc(_get(raw, 'expected_close_date')),
            engagement=DealEngagement.coerce(_get(raw, 'engagement')),
            activities=activity_count,
        )


@dataclass(frozen=True)
class DealScoreResult:
    deal_score: int
    win_probability: float
    risk_level: str
    risk_factors: List[str]
    suggested_next_steps: List[str]
    sentiment: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
