"""
Dashboard routes — health check and scoring-rule metadata.
"""
from flask import Blueprint, jsonify

from crmscore.scoring import load_scoring_config

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/scoring/rules')
def scoring_rules():
    """Active rule tables, for tooltips that explain a score."""
    cfg = load_scoring_config()
    return jsonify({
        'version': cfg.get('version'),
        'lead': {
            'source_points': cfg['lead']['source_points'],
            'status_points': cfg['lead']['status_points'],
            'priority_points': cfg['lead']['priority_points'],
        },
        'deal': {
            'stage_probability': cfg['deal']['stage_probability'],
            'next_steps': cfg['deal']['next_steps'],
        },
    })
