"""
Lead scoring — additive point rules, clamped to 0–100, graded cold→hot.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from crmscore.scoring.rules import clamp_score, grade_for_score, lead_rules
from crmscore.scoring.types import Factor, LeadScoreInput, LeadScoreResult, as_utc

logger = logging.getLogger('scoring.lead')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email) is not None


def days_since(created_at: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days elapsed (floored), None when the creation time is unknown."""
    if created_at is None:
        return None
    return (now - created_at) // timedelta(days=1)


def _prediction_for(score: int, predictions: List[dict]):
    for bracket in predictions:
        if score >= bracket.get('min_score', 0):
            return bracket.get('recommended_action', ''), bracket.get('next_best_step', '')
    last = predictions[-1] if predictions else {}
    return last.get('recommended_action', ''), last.get('next_best_step', '')


def score_lead(lead: Any, now: Optional[datetime] = None) -> LeadScoreResult:
    """
    Score a lead snapshot.

    ``lead`` may be a LeadScoreInput, a dict or any object with matching
    attributes; missing or malformed fields contribute nothing. ``now`` is
    the reference time for the recency rule and becomes ``analyzed_at``;
    pass it explicitly for reproducible results.
    """
    rules = lead_rules()
    snapshot = LeadScoreInput.coerce(lead)
    now = as_utc(now) or datetime.now(timezone.utc)

    score = 0
    factors = []

    if is_valid_email(snapshot.email):
        points = rules['email_points']
        score += points
        factors.append(Factor('Valid Email', points, 'Email format is valid'))
    elif snapshot.email:
        factors.append(Factor('Invalid Email', 0, 'Email format is invalid'))

    if snapshot.phone and len(snapshot.phone) >= rules['phone_min_length']:
        points = rules['phone_points']
        score += points
        factors.append(Factor('Phone Provided', points, 'Phone number available'))

    source = snapshot.source or 'other'
    points = rules['source_points'].get(source, rules['unknown_source_points'])
    score += points
    factors.append(Factor(f'{source} Source', points, f'Lead from {source}'))

    status = snapshot.status or 'unknown'
    points = rules['status_points'].get(status, rules['unknown_status_points'])
    score += points
    factors.append(Factor(f'{status} Status', points, f'Current status: {status}'))

    if snapshot.company:
        points = rules['company_points']
        score += points
        factors.append(Factor('Company Listed', points, 'Company information available'))

    if snapshot.job_title:
        points = rules['job_title_points']
        score += points
        factors.append(Factor('Job Title Listed', points, 'Job title available'))

    age = days_since(snapshot.created_at, now)
    if age is not None and age <= rules['recency_days']:
        points = rules['recency_points']
        score += points
        factors.append(Factor(
            'Recent Lead', points, f"Created within {rules['recency_days']} days",
        ))

    eng_rules = rules['engagement']
    weights = eng_rules['weights']
    engagement = snapshot.engagement
    engagement_points = min(
        eng_rules['cap'],
        engagement.emails_opened * weights.get('emails_opened', 0)
        + engagement.emails_clicked * weights.get('emails_clicked', 0)
        + engagement.calls_connected * weights.get('calls_connected', 0),
    )
    if engagement_points > 0:
        score += engagement_points
        factors.append(Factor('Engagement', engagement_points, 'Lead has engagement history'))

    # Priority counts toward the score but is not listed as a factor
    score += rules['priority_points'].get(snapshot.priority, 0)

    score = clamp_score(score)
    grade = grade_for_score(score)
    recommended_action, next_best_step = _prediction_for(score, rules['predictions'])

    logger.debug("Lead scored %d (%s) from %d factors", score, grade, len(factors))

    return LeadScoreResult(
        score=score,
        grade=grade,
        factors=factors,
        conversion_probability=score / 100,
        recommended_action=recommended_action,
        next_best_step=next_best_step,
        analyzed_at=now,
    )
