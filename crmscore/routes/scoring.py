"""
Scoring routes — stateless scoring of a posted snapshot.

Lets read-only consumers (badges, previews, imports) show exactly what the
record lifecycle would store, without keeping their own copy of the rules.
"""
import logging
from flask import Blueprint, jsonify, request

from crmscore.scoring import score_deal, score_lead
from crmscore.scoring.types import as_utc

logger = logging.getLogger('routes.scoring')

bp = Blueprint('scoring', __name__)


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@bp.route('/api/score/lead', methods=['POST'])
def score_lead_snapshot():
    data = _payload()
    if data is None:
        return jsonify({'error': 'Expected a JSON object'}), 400
    result = score_lead(data, now=as_utc(data.get('now')))
    return jsonify(result.to_dict())


@bp.route('/api/score/deal', methods=['POST'])
def score_deal_snapshot():
    data = _payload()
    if data is None:
        return jsonify({'error': 'Expected a JSON object'}), 400
    result = score_deal(data, now=as_utc(data.get('now')))
    return jsonify(result.to_dict())
