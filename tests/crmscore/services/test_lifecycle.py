"""Tests for crmscore.services.lifecycle — create/update with re-scoring."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from crmscore.scoring.types import as_utc
from crmscore.services.lifecycle import (
    RecordNotFound,
    ValidationError,
    add_deal_activity,
    append_score_history,
    create_deal,
    create_lead,
    delete_deal,
    delete_lead,
    deal_input_from,
    get_deal,
    get_lead,
    lead_input_from,
    list_deals,
    list_leads,
    rescore_lead,
    repredict_deals,
    rescore_leads,
    update_deal,
    update_deal_stage,
    update_lead,
    update_lead_status,
)


def _lead(session, now, **overrides):
    data = {'name': 'Jane Doe', 'email': 'jane@acme.io'}
    data.update(overrides)
    return create_lead(session, data, now=now)


def _deal(session, now, **overrides):
    data = {'title': 'Acme rollout', 'value': 50000, 'stage': 'proposal'}
    data.update(overrides)
    return create_deal(session, data, now=now)


# ── History ───────────────────────────────────────────────────────────────────

class TestAppendScoreHistory:

    def test_appends_to_copy(self):
        history = [{'score': 1}]
        updated = append_score_history(history, {'score': 2}, limit=5)
        assert updated == [{'score': 1}, {'score': 2}]
        assert history == [{'score': 1}]

    def test_keeps_newest(self):
        history = [{'score': i} for i in range(5)]
        updated = append_score_history(history, {'score': 5}, limit=3)
        assert [h['score'] for h in updated] == [3, 4, 5]

    def test_none_history(self):
        assert append_score_history(None, {'score': 7}, limit=3) == [{'score': 7}]


# ── Leads ─────────────────────────────────────────────────────────────────────

class TestCreateLead:

    def test_scores_on_create(self, db_session, now):
        lead = _lead(db_session, now)
        # email 15 + website 15 + new 10 + recent 10 + medium priority 5
        assert lead.ai_score == 55
        assert lead.ai_grade == 'cool'
        assert lead.ai_prediction['conversion_probability'] == pytest.approx(0.55)
        assert lead.ai_prediction['recommended_action'].startswith('Moderate interest')
        assert [f['name'] for f in lead.ai_factors] == [
            'Valid Email', 'website Source', 'new Status', 'Recent Lead',
        ]
        assert len(lead.score_history) == 1
        assert lead.score_history[0]['score'] == 55
        assert lead.version == 1

    def test_defaults(self, db_session, now):
        lead = _lead(db_session, now)
        assert lead.source == 'website'
        assert lead.status == 'new'
        assert lead.priority == 'medium'
        assert lead.converted is False

    def test_email_normalized(self, db_session, now):
        lead = _lead(db_session, now, email='  Jane@ACME.io ')
        assert lead.email == 'jane@acme.io'

    def test_invalid_email_is_stored_and_flagged(self, db_session, now):
        lead = _lead(db_session, now, email='not-an-email')
        assert lead.email == 'not-an-email'
        assert lead.ai_factors[0]['name'] == 'Invalid Email'

    def test_name_required(self, db_session, now):
        with pytest.raises(ValidationError):
            create_lead(db_session, {'email': 'x@y.io'}, now=now)
        with pytest.raises(ValidationError):
            create_lead(db_session, {'name': '   '}, now=now)

    def test_name_length_limit(self, db_session, now):
        with pytest.raises(ValidationError):
            _lead(db_session, now, name='x' * 201)

    @pytest.mark.parametrize('field,value', [
        ('source', 'billboard'),
        ('status', 'dormant'),
        ('priority', 'critical'),
        ('engagement', 'lots'),
    ])
    def test_rejects_bad_values(self, db_session, now, field, value):
        with pytest.raises(ValidationError):
            _lead(db_session, now, **{field: value})

    def test_engagement_counts_cleaned(self, db_session, now):
        lead = _lead(db_session, now, engagement={
            'emails_opened': '3', 'calls_connected': -2, 'bogus': 9,
        })
        assert lead.engagement == {'emails_opened': 3, 'calls_connected': 0}
        # 55 + 3 engagement points
        assert lead.ai_score == 58


class TestGetLead:

    def test_missing(self, db_session):
        with pytest.raises(RecordNotFound):
            get_lead(db_session, 999)

    def test_soft_deleted_is_hidden(self, db_session, now):
        lead = _lead(db_session, now)
        lead.deleted_at = now
        db_session.commit()
        with pytest.raises(RecordNotFound):
            get_lead(db_session, lead.id)


class TestUpdateLead:

    def test_trigger_change_rescores(self, db_session, now):
        lead = _lead(db_session, now)
        update_lead(db_session, lead.id, {'status': 'qualified'}, now=now)
        assert lead.ai_score == 75
        assert lead.ai_grade == 'warm'
        assert [h['score'] for h in lead.score_history] == [55, 75]

    def test_non_trigger_change_does_not_rescore(self, db_session, now):
        lead = _lead(db_session, now)
        update_lead(db_session, lead.id, {'company': 'Acme', 'priority': 'urgent'}, now=now)
        assert lead.company == 'Acme'
        assert lead.priority == 'urgent'
        assert lead.ai_score == 55
        assert len(lead.score_history) == 1

    def test_unchanged_trigger_value_does_not_rescore(self, db_session, now):
        lead = _lead(db_session, now)
        with patch('crmscore.services.lifecycle.apply_lead_score') as mock_apply:
            update_lead(db_session, lead.id, {'status': 'new', 'email': 'jane@acme.io'}, now=now)
        mock_apply.assert_not_called()

    def test_phone_change_rescores_with_new_recency(self, db_session, now):
        lead = _lead(db_session, now)
        later = now + timedelta(days=30)
        update_lead(db_session, lead.id, {'phone': '5551234567'}, now=later)
        # phone +10, recency bonus gone -10
        assert lead.ai_score == 55
        assert len(lead.score_history) == 2
        assert lead.score_history[-1]['analyzed_at'] == later.isoformat()

    def test_status_shortcut(self, db_session, now):
        lead = _lead(db_session, now)
        update_lead_status(db_session, lead.id, 'lost', now=now)
        assert lead.status == 'lost'
        assert lead.ai_score == 35

    def test_bad_value_rejected(self, db_session, now):
        lead = _lead(db_session, now)
        with pytest.raises(ValidationError):
            update_lead(db_session, lead.id, {'status': 'dormant'}, now=now)

    def test_engagement_merges_with_existing(self, db_session, now):
        lead = _lead(db_session, now, engagement={'emails_opened': 2})
        update_lead(db_session, lead.id, {'engagement': {'calls_connected': 1}}, now=now)
        assert lead.engagement == {'emails_opened': 2, 'calls_connected': 1}

    def test_version_increments(self, db_session, now):
        lead = _lead(db_session, now)
        update_lead(db_session, lead.id, {'status': 'contacted'}, now=now)
        assert lead.version == 2

    def test_concurrent_write_detected(self, db_session, now):
        lead = _lead(db_session, now)
        assert lead.version == 1
        # Another writer bumps the row behind this session's back
        db_session.connection().execute(
            text('UPDATE leads SET version = 5 WHERE id = :id'), {'id': lead.id},
        )
        with pytest.raises(StaleDataError):
            update_lead(db_session, lead.id, {'status': 'contacted'}, now=now)


class TestRescore:

    def test_history_bounded(self, db_session, now):
        lead = _lead(db_session, now)
        for i in range(55):
            rescore_lead(db_session, lead.id, now=now + timedelta(minutes=i))
        assert len(lead.score_history) == 50
        assert lead.score_history[-1]['analyzed_at'] == (now + timedelta(minutes=54)).isoformat()

    def test_history_limit_configurable(self, db_session, now):
        with patch('crmscore.config.SCORE_HISTORY_LIMIT', 3):
            lead = _lead(db_session, now)
            for _ in range(5):
                rescore_lead(db_session, lead.id, now=now)
        assert len(lead.score_history) == 3

    def test_rescore_all_skips_deleted(self, db_session, now):
        _lead(db_session, now)
        _lead(db_session, now, name='Second')
        gone = _lead(db_session, now, name='Gone')
        gone.deleted_at = now
        db_session.commit()

        assert rescore_leads(db_session, now=now + timedelta(days=10)) == 2
        assert len(gone.score_history) == 1


class TestDeleteLead:

    def test_soft_delete_hides_lead(self, db_session, now):
        lead = _lead(db_session, now)
        delete_lead(db_session, lead.id, now=now)
        assert as_utc(lead.deleted_at) == now
        assert lead.version == 2
        with pytest.raises(RecordNotFound):
            get_lead(db_session, lead.id)

    def test_delete_twice_is_not_found(self, db_session, now):
        lead = _lead(db_session, now)
        delete_lead(db_session, lead.id, now=now)
        with pytest.raises(RecordNotFound):
            delete_lead(db_session, lead.id, now=now)

    def test_deleted_lead_not_rescored(self, db_session, now):
        lead = _lead(db_session, now)
        _lead(db_session, now, name='Kept')
        delete_lead(db_session, lead.id, now=now)
        assert rescore_leads(db_session, now=now) == 1


class TestListLeads:

    @pytest.fixture
    def leads(self, db_session, now):
        """Scores 55 (website), 100 (referral) and 15 (ads, lost)."""
        _lead(db_session, now)
        _lead(db_session, now, name='Champion', email='champ@acme.io', phone='5551234567',
              source='referral', status='qualified', company='Acme')
        _lead(db_session, now, name='Gone cold', email=None, source='ads', status='lost')
        return db_session

    def test_newest_first(self, leads):
        items, pagination = list_leads(leads)
        assert [lead.name for lead in items] == ['Gone cold', 'Champion', 'Jane Doe']
        assert pagination == {'page': 1, 'limit': 20, 'total': 3, 'pages': 1}

    def test_min_score_reads_stored_score(self, leads):
        items, pagination = list_leads(leads, min_score=55)
        assert [lead.ai_score for lead in items] == [100, 55]
        assert pagination['total'] == 2

    def test_enum_filters(self, leads):
        items, _ = list_leads(leads, source='REFERRAL')
        assert [lead.name for lead in items] == ['Champion']
        items, _ = list_leads(leads, status='lost')
        assert [lead.name for lead in items] == ['Gone cold']

    def test_unknown_filter_value_rejected(self, leads):
        with pytest.raises(ValidationError):
            list_leads(leads, status='dormant')

    def test_pages(self, leads):
        items, pagination = list_leads(leads, page=2, limit=2)
        assert [lead.name for lead in items] == ['Jane Doe']
        assert pagination == {'page': 2, 'limit': 2, 'total': 3, 'pages': 2}

    def test_limit_clamped(self, leads):
        _, pagination = list_leads(leads, page=0, limit=500)
        assert pagination['page'] == 1
        assert pagination['limit'] == 100

    def test_deleted_excluded(self, leads, now):
        champion = list_leads(leads, source='referral')[0][0]
        delete_lead(leads, champion.id, now=now)
        items, pagination = list_leads(leads)
        assert pagination['total'] == 2
        assert 'Champion' not in [lead.name for lead in items]


# ── Deals ─────────────────────────────────────────────────────────────────────

class TestCreateDeal:

    def test_predicts_on_create(self, db_session, now):
        deal = _deal(db_session, now)
        prediction = deal.ai_prediction
        assert prediction['win_probability'] == pytest.approx(0.5)
        assert prediction['risk_level'] == 'medium'
        assert prediction['sentiment'] == 'neutral'
        assert prediction['suggested_next_steps'] == ['Follow up on proposal', 'Address questions']
        # 0.5 * 50 + 50000 / 10000
        assert deal.deal_score == 30
        assert deal.version == 1

    def test_defaults(self, db_session, now):
        deal = create_deal(db_session, {'title': 'Small', 'value': 100}, now=now)
        assert deal.stage == 'qualification'
        assert deal.status == 'open'
        assert deal.probability == 10
        assert deal.currency == 'USD'
        assert deal.activities == []

    @pytest.mark.parametrize('payload', [
        {'value': 100},
        {'title': 'No value'},
        {'title': '', 'value': 100},
        {'title': 'Neg', 'value': -5},
        {'title': 'Words', 'value': 'lots'},
        {'title': 'Infinite', 'value': float('inf')},
        {'title': 'Not a number', 'value': 'NaN'},
        {'title': 'Stage', 'value': 1, 'stage': 'won'},
        {'title': 'Prob', 'value': 1, 'probability': 101},
        {'title': 'Date', 'value': 1, 'expected_close_date': 'next week'},
    ])
    def test_validation(self, db_session, now, payload):
        with pytest.raises(ValidationError):
            create_deal(db_session, payload, now=now)

    def test_close_date_parsed(self, db_session, now):
        deal = _deal(db_session, now, expected_close_date='2026-02-20T00:00:00Z')
        assert as_utc(deal.expected_close_date) == datetime(2026, 2, 20, tzinfo=timezone.utc)
        assert deal.ai_prediction['risk_level'] == 'high'
        assert 'Deal is past expected close date' in deal.ai_prediction['risk_factors']


class TestUpdateDeal:

    def test_stage_change_repredicts(self, db_session, now):
        deal = _deal(db_session, now)
        update_deal(db_session, deal.id, {'stage': 'negotiation'}, now=now)
        assert deal.ai_prediction['win_probability'] == pytest.approx(0.75)
        assert deal.ai_prediction['sentiment'] == 'positive'

    def test_title_change_keeps_prediction(self, db_session, now):
        deal = _deal(db_session, now)
        with patch('crmscore.services.lifecycle.apply_deal_prediction') as mock_apply:
            update_deal(db_session, deal.id, {'title': 'Renamed'}, now=now)
        mock_apply.assert_not_called()
        assert deal.title == 'Renamed'

    def test_same_close_date_is_not_a_change(self, db_session, now):
        deal = _deal(db_session, now, expected_close_date='2026-04-01T00:00:00Z')
        db_session.expire_all()
        with patch('crmscore.services.lifecycle.apply_deal_prediction') as mock_apply:
            update_deal(db_session, deal.id,
                        {'expected_close_date': '2026-04-01T00:00:00+00:00'}, now=now)
        mock_apply.assert_not_called()

    def test_missing(self, db_session, now):
        with pytest.raises(RecordNotFound):
            update_deal(db_session, 404, {'stage': 'proposal'}, now=now)


class TestAddDealActivity:

    def test_meeting_bumps_counter_and_repredicts(self, db_session, now):
        deal = _deal(db_session, now)
        add_deal_activity(db_session, deal.id, {'type': 'meeting', 'description': 'Kickoff'}, now=now)

        assert len(deal.activities) == 1
        assert deal.activities[0]['type'] == 'meeting'
        assert deal.activities[0]['description'] == 'Kickoff'
        assert deal.engagement['meetings_held'] == 1
        assert deal.engagement['last_activity_at'] == now.isoformat()
        assert deal.ai_prediction['win_probability'] == pytest.approx(0.55)
        # Activity logged and a meeting held: nothing left to flag
        assert deal.ai_prediction['risk_level'] == 'low'
        assert deal.version == 2

    def test_note_has_no_counter(self, db_session, now):
        deal = _deal(db_session, now)
        add_deal_activity(db_session, deal.id, {'type': 'note'}, now=now)
        assert deal.engagement == {}
        assert 'No recent activity on deal' not in deal.ai_prediction['risk_factors']

    def test_rejects_unknown_type(self, db_session, now):
        deal = _deal(db_session, now)
        with pytest.raises(ValidationError):
            add_deal_activity(db_session, deal.id, {'type': 'lunch'}, now=now)

    def test_missing_deal(self, db_session, now):
        with pytest.raises(RecordNotFound):
            add_deal_activity(db_session, 404, {'type': 'call'}, now=now)

    def test_get_deal_hides_deleted(self, db_session, now):
        deal = _deal(db_session, now)
        deal.deleted_at = now
        db_session.commit()
        with pytest.raises(RecordNotFound):
            get_deal(db_session, deal.id)


class TestRepredictDeals:

    def test_close_date_risk_moves_with_clock(self, db_session, now):
        deal = _deal(db_session, now, probability=60, expected_close_date=(now + timedelta(days=20)).isoformat())
        add_deal_activity(db_session, deal.id, {'type': 'call'}, now=now)
        assert deal.ai_prediction['risk_level'] == 'low'

        assert repredict_deals(db_session, now=now + timedelta(days=21)) == 1
        assert deal.ai_prediction['risk_level'] == 'high'
        assert deal.ai_prediction['risk_factors'] == ['Deal is past expected close date']

    def test_closed_deals_left_alone(self, db_session, now):
        _deal(db_session, now, status='won')
        assert repredict_deals(db_session, now=now) == 0


class TestStageChanges:

    def test_move_is_logged(self, db_session, now):
        deal = _deal(db_session, now)
        update_deal(db_session, deal.id, {'stage': 'negotiation'}, now=now)
        assert deal.status == 'open'
        assert deal.activities == [{
            'type': 'change_stage',
            'description': 'Changed stage from proposal to negotiation',
            'outcome': None,
            'duration': None,
            'created_at': now.isoformat(),
        }]
        assert 'No recent activity on deal' not in deal.ai_prediction['risk_factors']

    def test_same_stage_is_not_logged(self, db_session, now):
        deal = _deal(db_session, now)
        update_deal(db_session, deal.id, {'stage': 'proposal'}, now=now)
        assert deal.activities == []

    def test_closed_won_settles_deal(self, db_session, now):
        deal = _deal(db_session, now, stage='negotiation')
        update_deal_stage(db_session, deal.id, 'closed_won', now=now)
        assert deal.status == 'won'
        assert deal.probability == 100
        assert deal.ai_prediction['suggested_next_steps'] == []
        assert repredict_deals(db_session, now=now) == 0

    def test_closed_lost_settles_deal(self, db_session, now):
        deal = _deal(db_session, now, probability=60)
        update_deal_stage(db_session, deal.id, 'closed_lost', now=now)
        assert deal.status == 'lost'
        assert deal.probability == 0

    def test_closed_stage_overrides_sent_status(self, db_session, now):
        deal = _deal(db_session, now)
        update_deal(db_session, deal.id, {'stage': 'closed_won', 'status': 'lost'}, now=now)
        assert deal.status == 'won'

    def test_reopening_a_closed_deal(self, db_session, now):
        deal = _deal(db_session, now)
        update_deal_stage(db_session, deal.id, 'closed_won', now=now)
        update_deal_stage(db_session, deal.id, 'negotiation', now=now)
        assert deal.status == 'open'
        assert [a['type'] for a in deal.activities] == ['change_stage', 'change_stage']
        assert repredict_deals(db_session, now=now) == 1

    def test_created_closed(self, db_session, now):
        deal = _deal(db_session, now, stage='closed_lost', probability=40)
        assert deal.status == 'lost'
        assert deal.probability == 0
        assert deal.activities == []

    def test_bad_stage_rejected(self, db_session, now):
        deal = _deal(db_session, now)
        with pytest.raises(ValidationError):
            update_deal_stage(db_session, deal.id, 'won', now=now)

    def test_non_finite_value_rejected_on_update(self, db_session, now):
        deal = _deal(db_session, now)
        with pytest.raises(ValidationError):
            update_deal(db_session, deal.id, {'value': float('nan')}, now=now)


class TestDeleteDeal:

    def test_soft_delete_hides_deal(self, db_session, now):
        deal = _deal(db_session, now)
        delete_deal(db_session, deal.id, now=now)
        assert as_utc(deal.deleted_at) == now
        with pytest.raises(RecordNotFound):
            get_deal(db_session, deal.id)
        assert repredict_deals(db_session, now=now) == 0

    def test_missing(self, db_session, now):
        with pytest.raises(RecordNotFound):
            delete_deal(db_session, 404, now=now)


class TestListDeals:

    @pytest.fixture
    def deals(self, db_session, now):
        _deal(db_session, now, title='Later', expected_close_date=(now + timedelta(days=20)).isoformat())
        _deal(db_session, now, title='Undated', value=5000, stage='discovery')
        _deal(db_session, now, title='Sooner', expected_close_date=(now + timedelta(days=5)).isoformat())
        return db_session

    def test_soonest_close_first(self, deals):
        items, pagination = list_deals(deals)
        assert [deal.title for deal in items] == ['Sooner', 'Later', 'Undated']
        assert pagination['total'] == 3

    def test_value_range(self, deals):
        items, _ = list_deals(deals, min_value=10000)
        assert [deal.title for deal in items] == ['Sooner', 'Later']
        items, _ = list_deals(deals, max_value=10000)
        assert [deal.title for deal in items] == ['Undated']

    def test_stage_and_status_filters(self, deals, now):
        items, _ = list_deals(deals, stage='discovery')
        assert [deal.title for deal in items] == ['Undated']

        sooner = list_deals(deals)[0][0]
        update_deal_stage(deals, sooner.id, 'closed_won', now=now)
        items, _ = list_deals(deals, status='won')
        assert [deal.title for deal in items] == ['Sooner']

    def test_unknown_stage_rejected(self, deals):
        with pytest.raises(ValidationError):
            list_deals(deals, stage='prospecting')

    def test_deleted_excluded(self, deals, now):
        later = list_deals(deals)[0][1]
        delete_deal(deals, later.id, now=now)
        items, _ = list_deals(deals)
        assert [deal.title for deal in items] == ['Sooner', 'Undated']


class TestInputSnapshots:

    def test_lead_snapshot_from_record(self, db_session, now):
        lead = _lead(db_session, now, phone='555 123 4567', engagement={'emails_opened': 4})
        snapshot = lead_input_from(lead)
        assert snapshot.email == 'jane@acme.io'
        assert snapshot.phone == '555 123 4567'
        assert snapshot.engagement.emails_opened == 4
        assert snapshot.created_at == now

    def test_deal_snapshot_counts_activity_log(self, db_session, now):
        deal = _deal(db_session, now)
        add_deal_activity(db_session, deal.id, {'type': 'note'}, now=now)
        add_deal_activity(db_session, deal.id, {'type': 'meeting'}, now=now)
        snapshot = deal_input_from(deal)
        assert snapshot.activities == 2
        assert snapshot.engagement.meetings_held == 1
        assert snapshot.value == 50000.0
