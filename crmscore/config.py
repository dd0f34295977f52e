"""
Centralized configuration — env vars, enum value lists, trigger fields.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Database ──────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Flask ─────────────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')

# ── Scoring ───────────────────────────────────────────────────────────────────
SCORE_HISTORY_LIMIT = int(os.getenv('SCORE_HISTORY_LIMIT', '50'))
SCORING_CONFIG_PATH = os.getenv('SCORING_CONFIG_PATH')

# ── Lead enums ────────────────────────────────────────────────────────────────
LEAD_SOURCES = [
    'website',
    'referral',
    'social',
    'ads',
    'email',
    'event',
    'partner',
    'other',
]

LEAD_STATUSES = [
    'new',
    'contacted',
    'qualified',
    'proposal',
    'negotiation',
    'won',
    'lost',
]

LEAD_PRIORITIES = ['low', 'medium', 'high', 'urgent']

LEAD_GRADES = ['cold', 'cool', 'warm', 'hot']

# ── Deal enums ────────────────────────────────────────────────────────────────
DEAL_STAGES = [
    'qualification',
    'discovery',
    'proposal',
    'negotiation',
    'closed_won',
    'closed_lost',
]

DEAL_STATUSES = ['open', 'won', 'lost', 'on_hold']

RISK_LEVELS = ['low', 'medium', 'high']

ACTIVITY_TYPES = ['call', 'email', 'meeting', 'note', 'task', 'proposal', 'change_stage']

# ── Recompute triggers: a change to any of these re-runs the scorer ─────────
LEAD_SCORE_TRIGGERS = ('email', 'phone', 'source', 'status', 'name')
DEAL_SCORE_TRIGGERS = ('stage', 'value', 'engagement', 'activities')
