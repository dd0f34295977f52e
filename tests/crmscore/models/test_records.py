"""Tests for crmscore.models — Lead and Deal serialization helpers."""
from datetime import datetime, timedelta, timezone

from crmscore.models.deal import Deal
from crmscore.models.lead import Lead


class TestLead:

    def test_to_dict_defaults(self):
        lead = Lead(name='Jane', source='website', status='new', priority='medium')
        data = lead.to_dict()
        assert data['name'] == 'Jane'
        assert data['engagement'] == {}
        assert data['ai_factors'] == []
        assert data['converted'] is False
        assert data['ai_analyzed_at'] is None

    def test_insights_trims_history(self):
        lead = Lead(
            name='Jane', ai_score=72, ai_grade='warm',
            score_history=[{'score': i} for i in range(15)],
            ai_analyzed_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        insights = lead.insights()
        assert insights['score'] == 72
        assert insights['analyzed_at'] == '2026-03-01T00:00:00+00:00'
        assert [h['score'] for h in insights['score_history']] == list(range(5, 15))
        assert len(lead.insights(history_size=3)['score_history']) == 3

    def test_version_starts_at_one(self, db_session):
        lead = Lead(name='Jane', source='website', status='new', priority='medium',
                    converted=False, ai_score=0, ai_grade='cold')
        db_session.add(lead)
        db_session.commit()
        assert lead.version == 1


class TestDeal:

    def test_weighted_value(self):
        assert Deal(title='D', value=20000.0, probability=25).weighted_value == 5000.0
        assert Deal(title='D').weighted_value == 0.0

    def test_days_until_close(self):
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        deal = Deal(title='D', expected_close_date=now + timedelta(days=2, hours=1))
        assert deal.days_until_close(now) == 3
        # SQLite hands back naive values
        naive = Deal(title='D', expected_close_date=datetime(2026, 2, 28, 12))
        assert naive.days_until_close(now) == -1
        assert Deal(title='D').days_until_close(now) is None

    def test_to_dict_counts_activities(self):
        deal = Deal(title='D', value=1000.0, probability=50,
                    activities=[{'type': 'call'}, {'type': 'note'}])
        data = deal.to_dict()
        assert data['activity_count'] == 2
        assert data['weighted_value'] == 500.0
        assert data['expected_close_date'] is None
