"""Tests for crmscore.routes.analytics and crmscore.routes.dashboard."""
from unittest.mock import patch


def _seed(client):
    client.post('/api/leads', json={'name': 'Jane Doe', 'email': 'jane@acme.io'})
    client.post('/api/leads', json={'name': 'Cold', 'source': 'ads', 'status': 'lost'})
    client.post('/api/deals', json={'title': 'Acme rollout', 'value': 50000, 'stage': 'proposal'})


class TestHealthCheck:
    """GET /health returns a simple health status."""

    def test_returns_200_with_healthy_status(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.json == {"status": "healthy"}


class TestScoringRules:
    """GET /api/scoring/rules exposes the active rule tables."""

    def test_returns_tables(self, client):
        resp = client.get('/api/scoring/rules')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['version'] == '1.0'
        assert data['lead']['source_points']['referral'] == 25
        assert data['lead']['status_points']['lost'] == -10
        assert data['deal']['stage_probability']['negotiation'] == 0.75
        assert data['deal']['next_steps']['closed_won'] == []


class TestDashboard:
    """GET /api/analytics/dashboard"""

    def test_summary_and_charts(self, client):
        _seed(client)
        resp = client.get('/api/analytics/dashboard')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['summary']['leads']['total'] == 2
        assert data['summary']['leads']['new_leads_30_days'] == 2
        assert data['summary']['deals']['open'] == 1
        assert [s['stage'] for s in data['charts']['pipeline_by_stage']] == ['proposal']

    def test_failure_is_500(self, client):
        with patch('crmscore.routes.analytics.analytics.dashboard', side_effect=RuntimeError('boom')):
            resp = client.get('/api/analytics/dashboard')
        assert resp.status_code == 500


class TestLeadAnalytics:
    """GET /api/analytics/leads"""

    def test_reports(self, client):
        _seed(client)
        resp = client.get('/api/analytics/leads')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['grade_distribution'] == {'cold': 1, 'cool': 1, 'warm': 0, 'hot': 0}
        assert len(data['score_distribution']) == 6
        assert data['status_funnel'][0]['status'] == 'new'

    def test_future_start_date_filters_everything(self, client):
        _seed(client)
        resp = client.get('/api/analytics/leads?start_date=2999-01-01')
        assert resp.status_code == 200
        assert sum(resp.get_json()['grade_distribution'].values()) == 0

    def test_bad_date_is_400(self, client):
        resp = client.get('/api/analytics/leads?start_date=last-week')
        assert resp.status_code == 400
        assert 'start_date' in resp.get_json()['error']


class TestDealAnalytics:
    """GET /api/analytics/deals"""

    def test_reports(self, client):
        _seed(client)
        resp = client.get('/api/analytics/deals')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['win_loss'] == [{'status': 'open', 'count': 1, 'total_value': 50000.0}]
        assert data['risk_distribution'] == {'low': 0, 'medium': 1, 'high': 0}

    def test_bad_date_is_400(self, client):
        resp = client.get('/api/analytics/deals?end_date=tomorrow')
        assert resp.status_code == 400
