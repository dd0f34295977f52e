"""
Record lifecycle — create/update leads and deals, re-scoring on change.

This is the only writer of the embedded score fields. A lead is re-scored
when one of LEAD_SCORE_TRIGGERS actually changes (always on create); a
deal when one of DEAL_SCORE_TRIGGERS does. Every lead re-score appends to
score_history, trimmed to the newest SCORE_HISTORY_LIMIT entries.

Moving a deal into a closed stage settles its status and probability and
logs a change_stage activity. Deletes are soft: deleted_at is set and the
record disappears from every lookup, list and report.

Callers own the session; functions here flush and commit but never close.
"""
import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from crmscore import config
from crmscore.models.deal import Deal
from crmscore.models.lead import Lead
from crmscore.scoring import DealScoreInput, LeadScoreInput, score_deal, score_lead
from crmscore.scoring.types import as_count, as_text, as_utc

logger = logging.getLogger('services.lifecycle')


class ValidationError(ValueError):
    """Record payload rejected before scoring."""


class RecordNotFound(LookupError):
    """No live record with that id."""


LEAD_FIELDS = ('name', 'email', 'phone', 'company', 'job_title', 'source',
               'status', 'priority', 'assigned_to', 'converted', 'engagement')
DEAL_FIELDS = ('title', 'company', 'value', 'currency', 'stage', 'status',
               'probability', 'expected_close_date', 'assigned_to', 'engagement')

LEAD_ENGAGEMENT_KEYS = ('emails_opened', 'emails_clicked', 'calls_attempted',
                        'calls_connected', 'meetings_held', 'pages_visited',
                        'forms_submitted')
DEAL_ENGAGEMENT_KEYS = ('emails_sent', 'emails_opened', 'emails_clicked',
                        'calls_made', 'meetings_held', 'proposals_sent')

# Logging an activity bumps the matching deal engagement counter
ACTIVITY_COUNTERS = {
    'call': 'calls_made',
    'meeting': 'meetings_held',
    'proposal': 'proposals_sent',
    'email': 'emails_sent',
}

# Closed stage -> (status, probability) it settles the deal at
CLOSED_STAGES = {
    'closed_won': ('won', 100),
    'closed_lost': ('lost', 0),
}

MAX_PAGE_SIZE = 100


def _now(now):
    return as_utc(now) or datetime.now(timezone.utc)


# ── History ───────────────────────────────────────────────────────────────────

def append_score_history(history: Optional[List[Dict]], entry: Dict,
                         limit: Optional[int] = None) -> List[Dict]:
    """Return a new list: ``history`` + ``entry``, keeping the newest ``limit``."""
    limit = config.SCORE_HISTORY_LIMIT if limit is None else limit
    updated = list(history or []) + [entry]
    if limit <= 0:
        return []
    return updated[-limit:]


# ── Scoring hooks ─────────────────────────────────────────────────────────────

def lead_input_from(lead: Lead) -> LeadScoreInput:
    return LeadScoreInput.coerce(lead)


def deal_input_from(deal: Deal) -> DealScoreInput:
    """Snapshot of ``deal``; the stored activity log counts as its activities."""
    return DealScoreInput.coerce(deal)


def apply_lead_score(lead: Lead, now=None):
    """Score ``lead`` in place and append the result to its history."""
    result = score_lead(lead_input_from(lead), now=_now(now))
    lead.ai_score = result.score
    lead.ai_grade = result.grade
    lead.ai_factors = [asdict(f) for f in result.factors]
    lead.ai_prediction = {
        'conversion_probability': result.conversion_probability,
        'recommended_action': result.recommended_action,
        'next_best_step': result.next_best_step,
    }
    lead.ai_analyzed_at = result.analyzed_at
    lead.score_history = append_score_history(lead.score_history, result.history_entry())
    return result


def apply_deal_prediction(deal: Deal, now=None):
    """Predict ``deal`` in place."""
    result = score_deal(deal_input_from(deal), now=_now(now))
    deal.deal_score = result.deal_score
    deal.ai_prediction = {
        'win_probability': result.win_probability,
        'risk_level': result.risk_level,
        'risk_factors': result.risk_factors,
        'suggested_next_steps': result.suggested_next_steps,
        'sentiment': result.sentiment,
    }
    return result


# ── Validation ────────────────────────────────────────────────────────────────

def _check_choice(field_name, value, choices):
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")


def _clean_engagement(raw, keys, current=None):
    if raw is None:
        return dict(current or {})
    if not isinstance(raw, dict):
        raise ValidationError('engagement must be an object')
    merged = dict(current or {})
    for key in keys:
        if key in raw:
            merged[key] = as_count(raw[key])
    return merged


def _clean_lead_fields(data: Dict[str, Any], current: Optional[Lead] = None) -> Dict[str, Any]:
    cleaned = {}
    for key in LEAD_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == 'name':
            value = as_text(value)
            if not value:
                raise ValidationError('Lead name is required')
            if len(value) > 200:
                raise ValidationError('Name cannot exceed 200 characters')
        elif key == 'email':
            value = as_text(value).lower() or None
        elif key in ('phone', 'company', 'job_title', 'assigned_to'):
            value = as_text(value) or None
        elif key == 'source':
            value = as_text(value).lower()
            _check_choice('source', value, config.LEAD_SOURCES)
        elif key == 'status':
            value = as_text(value).lower()
            _check_choice('status', value, config.LEAD_STATUSES)
        elif key == 'priority':
            value = as_text(value).lower()
            _check_choice('priority', value, config.LEAD_PRIORITIES)
        elif key == 'converted':
            value = bool(value)
        elif key == 'engagement':
            value = _clean_engagement(value, LEAD_ENGAGEMENT_KEYS,
                                      current.engagement if current else None)
        cleaned[key] = value
    return cleaned


def _clean_deal_fields(data: Dict[str, Any], current: Optional[Deal] = None) -> Dict[str, Any]:
    cleaned = {}
    for key in DEAL_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == 'title':
            value = as_text(value)
            if not value:
                raise ValidationError('Deal title is required')
        elif key == 'value':
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ValidationError('Deal value must be a number')
            if not math.isfinite(value):
                raise ValidationError('Deal value must be a finite number')
            if value < 0:
                raise ValidationError('Deal value cannot be negative')
        elif key == 'probability':
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError('probability must be an integer')
            if not 0 <= value <= 100:
                raise ValidationError('probability must be between 0 and 100')
        elif key == 'stage':
            value = as_text(value).lower()
            _check_choice('stage', value, config.DEAL_STAGES)
        elif key == 'status':
            value = as_text(value).lower()
            _check_choice('status', value, config.DEAL_STATUSES)
        elif key == 'expected_close_date':
            parsed = as_utc(value)
            if value not in (None, '') and parsed is None:
                raise ValidationError('expected_close_date must be an ISO date')
            value = parsed
        elif key in ('company', 'assigned_to'):
            value = as_text(value) or None
        elif key == 'currency':
            value = as_text(value).upper() or 'USD'
        elif key == 'engagement':
            value = _clean_engagement(value, DEAL_ENGAGEMENT_KEYS,
                                      current.engagement if current else None)
        cleaned[key] = value
    return cleaned


def _paginate(query, page, limit, *order_by):
    """One page of ``query`` plus the pagination block the list routes return."""
    page = max(1, page or 1)
    limit = min(max(1, limit or 20), MAX_PAGE_SIZE)
    total = query.count()
    items = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return items, {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit),
    }


# ── Leads ─────────────────────────────────────────────────────────────────────

def get_lead(session, lead_id) -> Lead:
    lead = session.get(Lead, lead_id)
    if lead is None or lead.deleted_at is not None:
        raise RecordNotFound(f"Lead {lead_id} not found")
    return lead


def create_lead(session, data: Dict[str, Any], now=None) -> Lead:
    if 'name' not in data:
        raise ValidationError('Lead name is required')
    now = _now(now)
    fields = _clean_lead_fields(data)
    lead = Lead(
        source='website', status='new', priority='medium', converted=False,
        engagement={}, ai_factors=[], score_history=[], created_at=now,
    )
    for key, value in fields.items():
        setattr(lead, key, value)
    apply_lead_score(lead, now)
    session.add(lead)
    session.commit()
    logger.info("Created lead %s (score=%d, grade=%s)", lead.id, lead.ai_score, lead.ai_grade)
    return lead


def update_lead(session, lead_id, changes: Dict[str, Any], now=None) -> Lead:
    """Apply ``changes``; re-score only if a trigger field changed value."""
    lead = get_lead(session, lead_id)
    fields = _clean_lead_fields(changes, current=lead)

    changed = {key for key, value in fields.items() if getattr(lead, key) != value}
    for key in changed:
        setattr(lead, key, fields[key])

    if changed & set(config.LEAD_SCORE_TRIGGERS):
        apply_lead_score(lead, now)
        logger.info("Re-scored lead %s after %s change: %d (%s)",
                    lead.id, ', '.join(sorted(changed)), lead.ai_score, lead.ai_grade)
    session.commit()
    return lead


def update_lead_status(session, lead_id, status: str, now=None) -> Lead:
    return update_lead(session, lead_id, {'status': status}, now=now)


def rescore_lead(session, lead_id, now=None) -> Lead:
    """Force a re-score regardless of what changed."""
    lead = get_lead(session, lead_id)
    apply_lead_score(lead, now)
    session.commit()
    return lead


def rescore_leads(session, now=None) -> int:
    """Re-score every live lead; returns how many were scored."""
    now = _now(now)
    leads = session.query(Lead).filter(Lead.deleted_at.is_(None)).all()
    for lead in leads:
        apply_lead_score(lead, now)
    session.commit()
    logger.info("Re-scored %d leads", len(leads))
    return len(leads)


def delete_lead(session, lead_id, now=None) -> Lead:
    lead = get_lead(session, lead_id)
    lead.deleted_at = _now(now)
    session.commit()
    logger.info("Deleted lead %s", lead.id)
    return lead


def list_leads(session, status=None, source=None, assigned_to=None,
               min_score=None, page=1, limit=20):
    """Live leads, newest first, filtered on the stored score and enums.

    Returns ``(leads, pagination)``.
    """
    query = session.query(Lead).filter(Lead.deleted_at.is_(None))
    if status:
        status = as_text(status).lower()
        _check_choice('status', status, config.LEAD_STATUSES)
        query = query.filter(Lead.status == status)
    if source:
        source = as_text(source).lower()
        _check_choice('source', source, config.LEAD_SOURCES)
        query = query.filter(Lead.source == source)
    if assigned_to:
        query = query.filter(Lead.assigned_to == assigned_to)
    if min_score is not None:
        query = query.filter(Lead.ai_score >= min_score)
    return _paginate(query, page, limit, Lead.created_at.desc(), Lead.id.desc())


# ── Deals ─────────────────────────────────────────────────────────────────────

def get_deal(session, deal_id) -> Deal:
    deal = session.get(Deal, deal_id)
    if deal is None or deal.deleted_at is not None:
        raise RecordNotFound(f"Deal {deal_id} not found")
    return deal


def create_deal(session, data: Dict[str, Any], now=None) -> Deal:
    for required in ('title', 'value'):
        if required not in data:
            raise ValidationError(f"Deal {required} is required")
    now = _now(now)
    fields = _clean_deal_fields(data)
    deal = Deal(
        stage='qualification', status='open', probability=10, currency='USD',
        engagement={}, activities=[], created_at=now,
    )
    for key, value in fields.items():
        setattr(deal, key, value)
    _settle_closed_stage(deal)
    apply_deal_prediction(deal, now)
    session.add(deal)
    session.commit()
    logger.info("Created deal %s (score=%d, risk=%s)",
                deal.id, deal.deal_score, deal.ai_prediction['risk_level'])
    return deal


def repredict_deals(session, now=None) -> int:
    """Re-predict every open deal; close-date risk moves with the clock."""
    now = _now(now)
    deals = session.query(Deal).filter(
        Deal.deleted_at.is_(None),
        Deal.status == 'open',
    ).all()
    for deal in deals:
        apply_deal_prediction(deal, now)
    session.commit()
    logger.info("Re-predicted %d open deals", len(deals))
    return len(deals)


def _same_value(current, new):
    # SQLite hands back naive datetimes for timezone-aware columns
    if hasattr(current, 'tzinfo') or hasattr(new, 'tzinfo'):
        return as_utc(current) == as_utc(new)
    return current == new


def _settle_closed_stage(deal: Deal):
    # A closed stage decides the outcome, whatever status/probability were sent
    outcome = CLOSED_STAGES.get(deal.stage)
    if outcome:
        deal.status, deal.probability = outcome


def _record_stage_change(deal: Deal, previous_stage, now):
    deal.activities = list(deal.activities or []) + [{
        'type': 'change_stage',
        'description': f'Changed stage from {previous_stage} to {deal.stage}',
        'outcome': None,
        'duration': None,
        'created_at': now.isoformat(),
    }]
    if deal.stage in CLOSED_STAGES:
        _settle_closed_stage(deal)
    elif previous_stage in CLOSED_STAGES and deal.status in ('won', 'lost'):
        # Reopened
        deal.status = 'open'


def update_deal(session, deal_id, changes: Dict[str, Any], now=None) -> Deal:
    now = _now(now)
    deal = get_deal(session, deal_id)
    fields = _clean_deal_fields(changes, current=deal)
    previous_stage = deal.stage

    changed = {key for key, value in fields.items() if not _same_value(getattr(deal, key), value)}
    for key in changed:
        setattr(deal, key, fields[key])
    if 'stage' in changed:
        _record_stage_change(deal, previous_stage, now)
        logger.info("Deal %s moved from %s to %s (status=%s)",
                    deal.id, previous_stage, deal.stage, deal.status)

    if changed & set(config.DEAL_SCORE_TRIGGERS):
        apply_deal_prediction(deal, now)
        logger.info("Re-predicted deal %s after %s change: %d (%s)",
                    deal.id, ', '.join(sorted(changed)), deal.deal_score,
                    deal.ai_prediction['risk_level'])
    session.commit()
    return deal


def update_deal_stage(session, deal_id, stage: str, now=None) -> Deal:
    return update_deal(session, deal_id, {'stage': stage}, now=now)


def delete_deal(session, deal_id, now=None) -> Deal:
    deal = get_deal(session, deal_id)
    deal.deleted_at = _now(now)
    session.commit()
    logger.info("Deleted deal %s", deal.id)
    return deal


def list_deals(session, status=None, stage=None, assigned_to=None,
               min_value=None, max_value=None, page=1, limit=20):
    """Live deals, soonest expected close first (undated last).

    Returns ``(deals, pagination)``.
    """
    query = session.query(Deal).filter(Deal.deleted_at.is_(None))
    if status:
        status = as_text(status).lower()
        _check_choice('status', status, config.DEAL_STATUSES)
        query = query.filter(Deal.status == status)
    if stage:
        stage = as_text(stage).lower()
        _check_choice('stage', stage, config.DEAL_STAGES)
        query = query.filter(Deal.stage == stage)
    if assigned_to:
        query = query.filter(Deal.assigned_to == assigned_to)
    if min_value is not None:
        query = query.filter(Deal.value >= min_value)
    if max_value is not None:
        query = query.filter(Deal.value <= max_value)
    return _paginate(query, page, limit, Deal.expected_close_date.is_(None),
                     Deal.expected_close_date, Deal.id)


def add_deal_activity(session, deal_id, activity: Dict[str, Any], now=None) -> Deal:
    """Log an activity, bump its engagement counter and re-predict."""
    now = _now(now)
    deal = get_deal(session, deal_id)

    activity_type = as_text(activity.get('type')).lower()
    if activity_type not in config.ACTIVITY_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(config.ACTIVITY_TYPES)}")

    entry = {
        'type': activity_type,
        'description': as_text(activity.get('description')),
        'outcome': as_text(activity.get('outcome')) or None,
        'duration': as_count(activity.get('duration')) or None,
        'created_at': now.isoformat(),
    }
    deal.activities = list(deal.activities or []) + [entry]

    counter = ACTIVITY_COUNTERS.get(activity_type)
    if counter:
        engagement = dict(deal.engagement or {})
        engagement[counter] = as_count(engagement.get(counter)) + 1
        engagement['last_activity_at'] = now.isoformat()
        deal.engagement = engagement

    apply_deal_prediction(deal, now)
    session.commit()
    logger.info("Logged %s on deal %s (%d activities)", activity_type, deal.id, len(deal.activities))
    return deal
