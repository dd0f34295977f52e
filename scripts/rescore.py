#!/usr/bin/env python3
"""
Recompute stored lead scores and deal predictions.

Recency bonuses and close-date risk depend on the current time, so stored
results drift. Run this on a schedule (daily is plenty) or after editing
scoring_config.yaml.

Usage:
    python scripts/rescore.py              # leads and open deals
    python scripts/rescore.py --leads-only
    python scripts/rescore.py --deals-only
"""
import sys
import os
import argparse
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crmscore.database import session_scope
from crmscore.logging_config import configure_logging
from crmscore.services.lifecycle import repredict_deals, rescore_leads

logger = logging.getLogger('scripts.rescore')


def main():
    parser = argparse.ArgumentParser(description='Recompute stored scores')
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--leads-only', action='store_true', help='Only re-score leads')
    group.add_argument('--deals-only', action='store_true', help='Only re-predict open deals')
    args = parser.parse_args()

    configure_logging()

    with session_scope() as session:
        if not args.deals_only:
            leads = rescore_leads(session)
            print(f'Re-scored {leads} leads')
        if not args.leads_only:
            deals = repredict_deals(session)
            print(f'Re-predicted {deals} open deals')


if __name__ == '__main__':
    main()
