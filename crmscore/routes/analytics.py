"""
Analytics blueprint — dashboard summary plus lead and deal reports.
"""
import logging
from flask import Blueprint, jsonify, request

from crmscore.database import get_session
from crmscore.scoring.types import as_utc
from crmscore.services import analytics

logger = logging.getLogger('routes.analytics')

bp = Blueprint('analytics', __name__)


def _date_range():
    """(start, end) from ?start_date=&end_date=; raises ValueError on junk."""
    bounds = []
    for name in ('start_date', 'end_date'):
        raw = request.args.get(name)
        parsed = as_utc(raw)
        if raw and parsed is None:
            raise ValueError(f"{name} must be an ISO date")
        bounds.append(parsed)
    return bounds[0], bounds[1]


@bp.route('/api/analytics/dashboard')
def dashboard():
    session = get_session()
    try:
        return jsonify(analytics.dashboard(session))
    except Exception:
        logger.exception("Dashboard analytics failed")
        return jsonify({'error': 'Failed to fetch analytics'}), 500
    finally:
        session.close()


@bp.route('/api/analytics/leads')
def leads():
    try:
        start, end = _date_range()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    session = get_session()
    try:
        return jsonify(analytics.lead_analytics(session, start, end))
    except Exception:
        logger.exception("Lead analytics failed")
        return jsonify({'error': 'Failed to fetch lead analytics'}), 500
    finally:
        session.close()


@bp.route('/api/analytics/deals')
def deals():
    try:
        start, end = _date_range()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    session = get_session()
    try:
        return jsonify(analytics.deal_analytics(session, start, end))
    except Exception:
        logger.exception("Deal analytics failed")
        return jsonify({'error': 'Failed to fetch deal analytics'}), 500
    finally:
        session.close()
