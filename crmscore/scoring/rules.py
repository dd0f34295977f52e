"""
Rule tables and fixed thresholds shared by every scorer and report.

Point tables live in scoring_config.yaml (cached after the first load, with
a hardcoded fallback). Grade, sentiment and risk thresholds are constants
here so single-record scoring and aggregate reports can never disagree.
"""
import copy
import logging
import os

import yaml

from crmscore import config

logger = logging.getLogger('scoring.rules')


# ── Fixed thresholds ──────────────────────────────────────────────────────────

# (minimum score, grade), highest first
GRADE_THRESHOLDS = [
    (80, 'hot'),
    (60, 'warm'),
    (40, 'cool'),
]
DEFAULT_GRADE = 'cold'

POSITIVE_SENTIMENT_MIN = 0.7
NEGATIVE_SENTIMENT_BELOW = 0.3
CLOSE_SOON_HIGH_RISK_BELOW = 0.5

RISK_ORDER = {'low': 0, 'medium': 1, 'high': 2}

SCORE_MIN = 0
SCORE_MAX = 100


def grade_for_score(score) -> str:
    for minimum, grade in GRADE_THRESHOLDS:
        if score >= minimum:
            return grade
    return DEFAULT_GRADE


def sentiment_for(win_probability: float) -> str:
    if win_probability >= POSITIVE_SENTIMENT_MIN:
        return 'positive'
    if win_probability < NEGATIVE_SENTIMENT_BELOW:
        return 'negative'
    return 'neutral'


def escalate_risk(current: str, floor: str) -> str:
    """Raise ``current`` to at least ``floor``; never lowers it."""
    if RISK_ORDER.get(floor, 0) > RISK_ORDER.get(current, 0):
        return floor
    return current


def clamp_score(value) -> int:
    return int(max(SCORE_MIN, min(SCORE_MAX, value)))


# ── Rule tables (YAML with hardcoded fallback) ───────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if the YAML is missing or unreadable."""
    return {
        'version': 'default',
        'lead': {
            'email_points': 15,
            'phone_points': 10,
            'phone_min_length': 10,
            'company_points': 10,
            'job_title_points': 5,
            'recency_days': 7,
            'recency_points': 10,
            'unknown_source_points': 5,
            'unknown_status_points': 0,
            'source_points': {
                'referral': 25, 'partner': 22, 'email': 20, 'event': 18,
                'website': 15, 'social': 12, 'ads': 10, 'other': 5,
            },
            'status_points': {
                'won': 35, 'qualified': 30, 'proposal': 25, 'negotiation': 20,
                'contacted': 15, 'new': 10, 'lost': -10,
            },
            'priority_points': {'urgent': 10, 'high': 7, 'medium': 5, 'low': 2},
            'engagement': {
                'cap': 15,
                'weights': {'emails_opened': 1, 'emails_clicked': 2, 'calls_connected': 3},
            },
            'predictions': [
                {'min_score': 80,
                 'recommended_action': 'High conversion probability. Prioritize follow-up.',
                 'next_best_step': 'Schedule a demo call within 24 hours'},
                {'min_score': 60,
                 'recommended_action': 'Good potential. Regular nurturing recommended.',
                 'next_best_step': 'Send personalized follow-up email'},
                {'min_score': 40,
                 'recommended_action': 'Moderate interest. Consider engagement campaigns.',
                 'next_best_step': 'Add to nurturing email sequence'},
                {'min_score': 0,
                 'recommended_action': 'Low engagement. May need re-evaluation or reactivation.',
                 'next_best_step': 'Research and prepare re-engagement strategy'},
            ],
        },
        'deal': {
            'unknown_stage_probability': 0.10,
            'max_win_probability': 0.95,
            'close_soon_days': 7,
            'high_value_threshold': 100000,
            'high_value_win_probability': 0.8,
            'stage_probability': {
                'qualification': 0.15, 'discovery': 0.25, 'proposal': 0.50,
                'negotiation': 0.75, 'closed_won': 1.0, 'closed_lost': 0.0,
            },
            'engagement': {
                'cap': 0.2,
                'weights': {
                    'emails_opened': 0.01, 'emails_clicked': 0.02, 'calls_made': 0.03,
                    'meetings_held': 0.05, 'proposals_sent': 0.05,
                },
            },
            'score': {
                'win_probability_weight': 50,
                'meeting_points': 5,
                'proposal_points': 3,
                'value_divisor': 10000,
                'value_cap': 20,
            },
            'next_steps': {
                'qualification': ['Schedule discovery call', 'Gather requirements'],
                'discovery': ['Prepare proposal', 'Identify decision makers'],
                'proposal': ['Follow up on proposal', 'Address questions'],
                'negotiation': ['Prepare negotiation strategy', 'Discuss internally about discounts'],
                'closed_won': [],
                'closed_lost': [],
            },
        },
    }


def _config_path():
    return config.SCORING_CONFIG_PATH or os.path.join(
        os.path.dirname(__file__), 'scoring_config.yaml',
    )


def _merge(defaults, loaded):
    """Overlay ``loaded`` on ``defaults`` one level deep per section."""
    merged = copy.deepcopy(defaults)
    for key, value in (loaded or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_scoring_config():
    """Load rule tables from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    path = _config_path()
    try:
        with open(path, 'r') as f:
            loaded = yaml.safe_load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"expected a mapping, got {type(loaded).__name__}")
        _scoring_config = _merge(_default_config(), loaded)
        logger.info("Scoring rules loaded from %s (version=%s)",
                    path, _scoring_config.get('version', '?'))
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.warning("Scoring rules unavailable (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


def reset_scoring_config():
    """Drop the cached tables; the next load re-reads the YAML."""
    global _scoring_config
    _scoring_config = None


def lead_rules():
    return load_scoring_config()['lead']


def deal_rules():
    return load_scoring_config()['deal']
