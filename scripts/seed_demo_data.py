#!/usr/bin/env python3
"""
Seed demo leads and deals for trying the dashboard locally.

Every record goes through the lifecycle service, so scores, grades and
predictions are exactly what the API would store:
  1. Leads across all four grades (hot referral, warm event, cool website, cold ads)
  2. Open deals in each active stage, one past due, one with no activity
  3. A won and a lost deal for the win/loss report

Usage:
    python scripts/seed_demo_data.py          # seed all records
    python scripts/seed_demo_data.py --clear  # wipe seeded records first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crmscore import create_app
from crmscore.database import get_session, engine, Base
from crmscore.models.deal import Deal
from crmscore.models.lead import Lead
from crmscore.services.lifecycle import add_deal_activity, create_deal, create_lead


# Seeded rows are owned by this user so --clear can find them
SEED_OWNER = 'seed-script'

LEADS = [
    {'name': 'Jane Morrison',  'email': 'jane@northwind.io',  'phone': '5551234567', 'source': 'referral', 'status': 'qualified', 'company': 'Northwind',  'priority': 'high'},
    {'name': 'Carlos Reyes',   'email': 'carlos@tailspin.co', 'phone': '5559876543', 'source': 'event',    'status': 'contacted', 'company': 'Tailspin',   'priority': 'medium'},
    {'name': 'Priya Sharma',   'email': 'priya@contoso.com',  'source': 'website',   'status': 'new',      'job_title': 'Ops Lead', 'priority': 'medium'},
    {'name': 'Liam O\'Brien',  'email': 'liam@fabrikam',      'source': 'ads',       'status': 'lost',     'priority': 'low'},
    {'name': 'Emma Chen',      'email': 'emma@litware.net',   'source': 'partner',   'status': 'proposal', 'company': 'Litware', 'priority': 'urgent',
     'engagement': {'emails_opened': 6, 'emails_clicked': 2, 'calls_connected': 1}},
]

DEALS = [
    {'title': 'Northwind rollout',  'company': 'Northwind', 'value': 150000, 'stage': 'negotiation', 'probability': 70, 'close_in_days': 12,
     'activities': ['meeting', 'proposal', 'call']},
    {'title': 'Tailspin pilot',     'company': 'Tailspin',  'value': 25000,  'stage': 'discovery',   'probability': 25, 'close_in_days': 30,
     'activities': ['call']},
    {'title': 'Contoso expansion',  'company': 'Contoso',   'value': 60000,  'stage': 'proposal',    'probability': 45, 'close_in_days': -3,
     'activities': ['email', 'meeting']},
    {'title': 'Fabrikam trial',     'company': 'Fabrikam',  'value': 8000,   'stage': 'qualification', 'probability': 10, 'close_in_days': 5,
     'activities': []},
    {'title': 'Litware renewal',    'company': 'Litware',   'value': 40000,  'stage': 'closed_won',  'probability': 100, 'status': 'won',
     'activities': ['meeting']},
    {'title': 'Adatum migration',   'company': 'Adatum',    'value': 90000,  'stage': 'closed_lost', 'probability': 0, 'status': 'lost',
     'activities': ['call', 'note']},
]


def seed_leads(session, now):
    for i, data in enumerate(LEADS):
        # Spread creation dates over the last two weeks
        created = now - timedelta(days=3 * i)
        lead = create_lead(session, dict(data, assigned_to=SEED_OWNER), now=created)
        print(f'  lead  {lead.name:<16} score={lead.ai_score:>3} grade={lead.ai_grade}')


def seed_deals(session, now):
    for data in DEALS:
        data = dict(data)
        activities = data.pop('activities')
        close_in = data.pop('close_in_days', None)
        if close_in is not None:
            data['expected_close_date'] = (now + timedelta(days=close_in)).isoformat()
        deal = create_deal(session, dict(data, assigned_to=SEED_OWNER), now=now)
        for activity_type in activities:
            add_deal_activity(session, deal.id, {
                'type': activity_type, 'description': f'Seeded {activity_type}',
            }, now=now)
        risk = deal.ai_prediction['risk_level']
        print(f'  deal  {deal.title:<20} score={deal.deal_score:>3} risk={risk}')


def clear_seeded_data(session):
    deleted_leads = session.query(Lead).filter(Lead.assigned_to == SEED_OWNER).delete()
    deleted_deals = session.query(Deal).filter(Deal.assigned_to == SEED_OWNER).delete()
    session.commit()
    print(f'Cleared {deleted_leads} leads, {deleted_deals} deals.')


def main():
    parser = argparse.ArgumentParser(description='Seed demo leads and deals')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        # Ensure tables exist (for SQLite local dev)
        Base.metadata.create_all(engine)

        session = get_session()
        try:
            if args.clear or args.clear_only:
                clear_seeded_data(session)
                if args.clear_only:
                    return

            now = datetime.now(timezone.utc)
            print('Seeding demo data...')
            seed_leads(session, now)
            seed_deals(session, now)
            print('\nDone! Try GET /api/analytics/dashboard.')

        except Exception as e:
            session.rollback()
            print(f'Error: {e}')
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
