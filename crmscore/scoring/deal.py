"""
Deal prediction — win probability, risk, next steps, sentiment, deal score.

Risk is re-derived from scratch on every call. Within one pass the level
only ever moves up (low → medium → high).
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from crmscore.scoring.rules import (
    CLOSE_SOON_HIGH_RISK_BELOW,
    clamp_score,
    deal_rules,
    escalate_risk,
    sentiment_for,
)
from crmscore.scoring.types import DealScoreInput, DealScoreResult, as_utc

logger = logging.getLogger('scoring.deal')

PAST_DUE = 'Deal is past expected close date'
CLOSING_SOON = 'Close date is very soon'
HIGH_VALUE_CHECK = 'High-value deal approaching close - consider additional verification'
NO_ACTIVITY = 'No recent activity on deal'
LOW_PROBABILITY_NO_MEETINGS = 'Low probability with no meetings held'


def days_until(close_date: Optional[datetime], now: datetime) -> Optional[int]:
    """Days until ``close_date`` rounded up; negative once it has passed."""
    if close_date is None:
        return None
    return math.ceil((close_date - now).total_seconds() / 86400)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def engagement_bonus(engagement, rules) -> float:
    eng_rules = rules['engagement']
    weights = eng_rules['weights']
    raw = (
        engagement.emails_opened * weights.get('emails_opened', 0)
        + engagement.emails_clicked * weights.get('emails_clicked', 0)
        + engagement.calls_made * weights.get('calls_made', 0)
        + engagement.meetings_held * weights.get('meetings_held', 0)
        + engagement.proposals_sent * weights.get('proposals_sent', 0)
    )
    return min(eng_rules['cap'], raw)


def score_deal(deal: Any, now: Optional[datetime] = None) -> DealScoreResult:
    """
    Predict a deal's outcome.

    ``deal`` may be a DealScoreInput, a dict or a record object; missing
    numbers count as 0 and an unknown stage starts from the fallback base
    probability. ``now`` anchors the close-date checks.
    """
    rules = deal_rules()
    snapshot = DealScoreInput.coerce(deal)
    now = as_utc(now) or datetime.now(timezone.utc)
    engagement = snapshot.engagement

    base = rules['stage_probability'].get(snapshot.stage, rules['unknown_stage_probability'])
    win_probability = min(rules['max_win_probability'], base + engagement_bonus(engagement, rules))
    win_probability = max(0.0, win_probability)

    risk_factors = []
    risk_level = 'low'

    remaining = days_until(snapshot.expected_close_date, now)
    if remaining is not None:
        if remaining < 0:
            risk_factors.append(PAST_DUE)
            risk_level = escalate_risk(risk_level, 'high')
        elif remaining < rules['close_soon_days'] and win_probability < CLOSE_SOON_HIGH_RISK_BELOW:
            risk_factors.append(CLOSING_SOON)
            risk_level = escalate_risk(risk_level, 'high')

    if (snapshot.value > rules['high_value_threshold']
            and win_probability > rules['high_value_win_probability']):
        risk_factors.append(HIGH_VALUE_CHECK)

    if snapshot.activities == 0:
        risk_factors.append(NO_ACTIVITY)
        risk_level = escalate_risk(risk_level, 'medium')

    if snapshot.probability < 30 and engagement.meetings_held == 0:
        risk_factors.append(LOW_PROBABILITY_NO_MEETINGS)
        risk_level = escalate_risk(risk_level, 'medium')

    next_steps = list(rules['next_steps'].get(snapshot.stage) or [])

    score_rules = rules['score']
    raw_score = (
        win_probability * score_rules['win_probability_weight']
        + engagement.meetings_held * score_rules['meeting_points']
        + engagement.proposals_sent * score_rules['proposal_points']
        + min(score_rules['value_cap'], snapshot.value / score_rules['value_divisor'])
    )
    deal_score = clamp_score(round_half_up(raw_score))

    logger.debug("Deal scored %d (win=%.2f, risk=%s)", deal_score, win_probability, risk_level)

    return DealScoreResult(
        deal_score=deal_score,
        win_probability=win_probability,
        risk_level=risk_level,
        risk_factors=risk_factors,
        suggested_next_steps=next_steps,
        sentiment=sentiment_for(win_probability),
    )
