"""
Analytics service — reporting views over stored lead scores and deal predictions.

Nothing here re-scores a record: reports read ai_score / ai_grade /
deal_score / ai_prediction as persisted by the lifecycle service. Grade
buckets for raw score lists go through the scorer's own grade_for_score,
so a report can never disagree with a record's badge.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, case

from crmscore import config
from crmscore.models.deal import Deal
from crmscore.models.lead import Lead
from crmscore.scoring.rules import grade_for_score

logger = logging.getLogger('services.analytics')

# Lower bounds; the last bucket holds perfect scores only
SCORE_BUCKETS = [0, 20, 40, 60, 80, 100]


def _round(value, digits=2):
    return round(float(value or 0), digits)


def _date_filter(query, column, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


# ── Pure helpers ──────────────────────────────────────────────────────────────

def bucket_for_score(score) -> int:
    """Lower bound of the histogram bucket holding ``score``."""
    bucket = SCORE_BUCKETS[0]
    for lower in SCORE_BUCKETS:
        if score >= lower:
            bucket = lower
    return bucket


def bucket_scores(scores: Iterable[int]) -> Dict[int, int]:
    """Histogram of scores keyed by bucket lower bound (every bucket present)."""
    counts = {lower: 0 for lower in SCORE_BUCKETS}
    for score in scores:
        counts[bucket_for_score(score)] += 1
    return counts


def grade_counts(scores: Iterable[int]) -> Dict[str, int]:
    counts = {grade: 0 for grade in config.LEAD_GRADES}
    for score in scores:
        counts[grade_for_score(score)] += 1
    return counts


# ── Leads ─────────────────────────────────────────────────────────────────────

def _live_leads(session, start=None, end=None):
    query = session.query(Lead).filter(Lead.deleted_at.is_(None))
    return _date_filter(query, Lead.created_at, start, end)


def lead_summary(session, now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now(timezone.utc)
    row = session.query(
        func.count(Lead.id).label('total'),
        func.sum(case((Lead.status == 'new', 1), else_=0)).label('new'),
        func.sum(case((Lead.status == 'qualified', 1), else_=0)).label('qualified'),
        func.sum(case((Lead.converted.is_(True), 1), else_=0)).label('converted'),
        func.avg(Lead.ai_score).label('avg_score'),
        func.sum(case((Lead.ai_grade == 'hot', 1), else_=0)).label('hot_leads'),
    ).filter(Lead.deleted_at.is_(None)).first()

    recent = session.query(func.count(Lead.id)).filter(
        Lead.deleted_at.is_(None),
        Lead.created_at >= now - timedelta(days=30),
    ).scalar()

    return {
        'total': int(row.total or 0),
        'new': int(row.new or 0),
        'qualified': int(row.qualified or 0),
        'converted': int(row.converted or 0),
        'avg_score': _round(row.avg_score),
        'hot_leads': int(row.hot_leads or 0),
        'new_leads_30_days': int(recent or 0),
    }


def _live_scores(session, start=None, end=None) -> List[int]:
    return [s for (s,) in _live_leads(session, start, end).with_entities(Lead.ai_score)]


def score_distribution(session, start=None, end=None) -> List[Dict]:
    scores = _live_scores(session, start, end)
    return [{'bucket': lower, 'count': count} for lower, count in bucket_scores(scores).items()]


def grade_distribution(session, start=None, end=None) -> Dict[str, int]:
    """Grades of the stored scores, bucketed with the scorer's thresholds."""
    return grade_counts(_live_scores(session, start, end))


def source_performance(session, start=None, end=None) -> List[Dict]:
    rows = _live_leads(session, start, end).with_entities(
        Lead.source,
        func.count(Lead.id).label('count'),
        func.avg(Lead.ai_score).label('avg_score'),
        func.sum(case((Lead.converted.is_(True), 1), else_=0)).label('converted'),
    ).group_by(Lead.source).all()

    result = [{
        'source': row.source,
        'count': row.count,
        'avg_score': _round(row.avg_score),
        'converted': int(row.converted or 0),
        'conversion_rate': _round((row.converted or 0) / row.count * 100 if row.count else 0, 1),
    } for row in rows]
    result.sort(key=lambda r: (-r['count'], r['source']))
    return result


def status_funnel(session, start=None, end=None) -> List[Dict]:
    rows = _live_leads(session, start, end).with_entities(
        Lead.status,
        func.count(Lead.id).label('count'),
        func.avg(Lead.ai_score).label('avg_score'),
    ).group_by(Lead.status).all()
    by_status = {row.status: row for row in rows}

    # Funnel order follows the lifecycle, not the counts
    return [{
        'status': status,
        'count': by_status[status].count if status in by_status else 0,
        'avg_score': _round(by_status[status].avg_score) if status in by_status else 0.0,
    } for status in config.LEAD_STATUSES]


def lead_analytics(session, start=None, end=None) -> Dict:
    return {
        'score_distribution': score_distribution(session, start, end),
        'grade_distribution': grade_distribution(session, start, end),
        'source_performance': source_performance(session, start, end),
        'status_funnel': status_funnel(session, start, end),
    }


# ── Deals ─────────────────────────────────────────────────────────────────────

_weighted = Deal.value * Deal.probability / 100.0


def _live_deals(session, start=None, end=None):
    query = session.query(Deal).filter(Deal.deleted_at.is_(None))
    return _date_filter(query, Deal.created_at, start, end)


def deal_summary(session) -> Dict:
    row = session.query(
        func.count(Deal.id).label('total'),
        func.sum(case((Deal.status == 'open', 1), else_=0)).label('open'),
        func.sum(case((Deal.status == 'won', 1), else_=0)).label('won'),
        func.sum(case((Deal.status == 'lost', 1), else_=0)).label('lost'),
        func.sum(Deal.value).label('total_value'),
        func.sum(_weighted).label('weighted_value'),
    ).filter(Deal.deleted_at.is_(None)).first()

    return {
        'total': int(row.total or 0),
        'open': int(row.open or 0),
        'won': int(row.won or 0),
        'lost': int(row.lost or 0),
        'total_value': _round(row.total_value),
        'weighted_value': _round(row.weighted_value),
    }


def pipeline_by_stage(session) -> List[Dict]:
    """Open deals grouped by stage, in pipeline order."""
    rows = session.query(
        Deal.stage,
        func.count(Deal.id).label('count'),
        func.sum(Deal.value).label('total_value'),
        func.avg(Deal.probability).label('avg_probability'),
        func.avg(Deal.deal_score).label('avg_deal_score'),
        func.sum(_weighted).label('weighted_value'),
    ).filter(
        Deal.deleted_at.is_(None),
        Deal.status == 'open',
    ).group_by(Deal.stage).all()
    by_stage = {row.stage: row for row in rows}

    result = []
    for stage in config.DEAL_STAGES:
        row = by_stage.get(stage)
        if row is None:
            continue
        result.append({
            'stage': stage,
            'count': row.count,
            'total_value': _round(row.total_value),
            'avg_probability': _round(row.avg_probability, 1),
            'avg_deal_score': _round(row.avg_deal_score, 1),
            'weighted_value': _round(row.weighted_value),
        })
    return result


def risk_distribution(session) -> Dict[str, int]:
    """Open deals by predicted risk level (read from the stored prediction)."""
    counts = {level: 0 for level in config.RISK_LEVELS}
    predictions = session.query(Deal.ai_prediction).filter(
        Deal.deleted_at.is_(None),
        Deal.status == 'open',
    ).all()
    for (prediction,) in predictions:
        level = (prediction or {}).get('risk_level')
        if level in counts:
            counts[level] += 1
    return counts


def win_loss(session, start=None, end=None) -> List[Dict]:
    rows = _live_deals(session, start, end).with_entities(
        Deal.status,
        func.count(Deal.id).label('count'),
        func.sum(Deal.value).label('total_value'),
    ).group_by(Deal.status).all()
    return sorted(({
        'status': row.status,
        'count': row.count,
        'total_value': _round(row.total_value),
    } for row in rows), key=lambda r: r['status'])


def deal_analytics(session, start=None, end=None) -> Dict:
    return {
        'win_loss': win_loss(session, start, end),
        'pipeline_by_stage': pipeline_by_stage(session),
        'risk_distribution': risk_distribution(session),
    }


def dashboard(session, now: Optional[datetime] = None) -> Dict:
    summary = {
        'leads': lead_summary(session, now),
        'deals': deal_summary(session),
    }
    logger.debug("Dashboard summary: %d leads, %d deals",
                 summary['leads']['total'], summary['deals']['total'])
    return {
        'summary': summary,
        'charts': {
            'leads_by_source': source_performance(session),
            'leads_by_status': status_funnel(session),
            'pipeline_by_stage': pipeline_by_stage(session),
        },
    }
