"""
Lead and deal scoring engine.

Pure functions over record snapshots; the same engine backs the record
lifecycle, the analytics reports and the stateless scoring endpoints.
"""
from crmscore.scoring.deal import score_deal
from crmscore.scoring.lead import score_lead
from crmscore.scoring.rules import grade_for_score, load_scoring_config, reset_scoring_config
from crmscore.scoring.types import (
    DealEngagement,
    DealScoreInput,
    DealScoreResult,
    Factor,
    LeadEngagement,
    LeadScoreInput,
    LeadScoreResult,
)

__all__ = [
    'score_lead',
    'score_deal',
    'grade_for_score',
    'load_scoring_config',
    'reset_scoring_config',
    'LeadScoreInput',
    'LeadEngagement',
    'LeadScoreResult',
    'Factor',
    'DealScoreInput',
    'DealEngagement',
    'DealScoreResult',
]
