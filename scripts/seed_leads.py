#!/usr/bin/env python3
"""
Seed the local SQL `leads` table for exercising the analysis API.

Creates a spread of markets covering the interesting cases:
  1. Large market with broad coverage and a few watched categories present
  2. Large market with zero presence in every watched category
  3. Small markets below the minimum size
  4. Rows with aliased, unknown and missing service types
  5. Rows without a city (skipped by the aggregator)

Usage:
    python scripts/seed_leads.py          # seed all scenarios
    python scripts/seed_leads.py --clear  # wipe seeded rows first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import uuid
import random
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadintel import create_app
from leadintel.database import init_db, session_scope
from leadintel.models.lead import Lead


# ── Markets ──────────────────────────────────────────────────────────────────

MARKETS = [
    # (city, state, lead count, service types drawn from)
    ('Austin', 'TX', 120, ['Pool Builders', 'Roofing Contractors', 'Painting Companies',
                           'Kitchen remodeler', 'Landscaper', 'EV Charging Installation',
                           'Smart home installation', 'HVAC contractor']),
    ('Phoenix', 'AZ', 90, ['Pool Builders', 'Roofing Contractors', 'Concrete contractor',
                           'Plumber', 'Painter']),
    ('Denver', 'CO', 60, ['Roofing Contractors', 'Deck builder', 'Window installation service',
                          'Artificial Turf Installation']),
    ('Boise', 'ID', 6, ['Roofing Contractors', 'Painter']),
    ('Burlington', 'VT', 4, ['Painting Companies']),
]

MESSY_SERVICE_TYPES = [None, '', '   ', 'Dog groomer', 'Notary public']

NAMES = ['Summit', 'Pioneer', 'Blue Ridge', 'Lone Star', 'Canyon', 'Evergreen', 'Apex', 'Cornerstone']
SUFFIXES = ['Builders', 'Services', 'Pros', 'Contractors', 'Group']

# Prefix for seeded IDs so we can clear them
SEED_PREFIX = 'seed-'


def make_id():
    return SEED_PREFIX + str(uuid.uuid4())


def make_lead(city, state, service_type, rng):
    return Lead(
        id=make_id(),
        company_name=f'{rng.choice(NAMES)} {rng.choice(SUFFIXES)} LLC',
        phone=f'({rng.randint(200, 999)}) {rng.randint(200, 999)}-{rng.randint(1000, 9999)}',
        city=city,
        state=state,
        service_type=service_type,
        rating=round(rng.uniform(3.5, 5.0), 1),
        review_count=rng.randint(0, 400),
    )


def seed_markets(session, rng):
    count = 0
    for city, state, size, service_types in MARKETS:
        for i in range(size):
            # every tenth row gets a messy category
            if i % 10 == 9:
                service_type = rng.choice(MESSY_SERVICE_TYPES)
            else:
                service_type = rng.choice(service_types)
            session.add(make_lead(city, state, service_type, rng))
            count += 1
    print(f'  {count} leads across {len(MARKETS)} markets')


def seed_unlocated(session, rng):
    for _ in range(5):
        session.add(make_lead(None, 'TX', 'Pool Builders', rng))
    print('  5 leads without a city')


def clear_seeded_data(session):
    """Remove all seeded leads."""
    deleted = session.query(Lead).filter(Lead.id.like(f'{SEED_PREFIX}%')).delete(synchronize_session=False)
    session.commit()
    print(f'Cleared {deleted} seeded leads.')


def main():
    parser = argparse.ArgumentParser(description='Seed local leads for the analysis API')
    parser.add_argument('--clear', action='store_true', help='Clear seeded leads before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    parser.add_argument('--seed', type=int, default=42, help='Random seed for reproducible data')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        init_db()

        with session_scope() as session:
            if args.clear or args.clear_only:
                clear_seeded_data(session)
                if args.clear_only:
                    return

            rng = random.Random(args.seed)
            print('Seeding leads...')
            seed_markets(session, rng)
            seed_unlocated(session, rng)
            session.commit()
            print('\nDone! Try http://localhost:8080/api/opportunities')


if __name__ == '__main__':
    main()
