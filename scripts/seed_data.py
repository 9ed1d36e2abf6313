#!/usr/bin/env python3
"""Seed the plan catalog, core sports, leagues, bookmakers and an admin account."""
import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bettips.api.auth import hash_password
from bettips.db import Bookmaker, League, Sport, crud, init_db
from bettips.permissions import Role
from bettips.settings import configure_logging, load_settings
from bettips.subscriptions import ensure_default_plans

SPORTS = [
    ("Football", "Football matches from the major leagues"),
    ("Basketball", "Basketball games from several leagues"),
    ("Tennis", "Tennis matches from the main tours"),
    ("Baseball", "Baseball games from several leagues"),
    ("Hockey", "Ice hockey games from several leagues"),
]

LEAGUES = [
    ("Football", "Premier League", "England"),
    ("Football", "La Liga", "Spain"),
    ("Football", "Serie A", "Italy"),
    ("Football", "Bundesliga", "Germany"),
    ("Basketball", "NBA", "USA"),
    ("Basketball", "EuroLeague", "Europe"),
    ("Tennis", "ATP Tour", "International"),
    ("Tennis", "WTA Tour", "International"),
    ("Baseball", "MLB", "USA"),
    ("Hockey", "NHL", "USA/Canada"),
]

BOOKMAKERS = [
    ("bet365", "https://www.bet365.com"),
    ("Betway", "https://www.betway.com"),
    ("1xBet", "https://www.1xbet.com"),
]


def main():
    parser = argparse.ArgumentParser(description="Seed the BetTips database")
    parser.add_argument("--db-url", default=None, help="Database URL (default: from settings)")
    parser.add_argument("--admin-email", default=os.environ.get("ADMIN_EMAIL", "admin@bettips.local"))
    parser.add_argument("--admin-password", default=os.environ.get("ADMIN_PASSWORD"))
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)
    database = init_db(args.db_url or settings.database_url)
    db = database.session()
    try:
        plans = ensure_default_plans(db)
        print(f"Plans: {len(plans)} created")

        sports = {}
        for name, description in SPORTS:
            sport = db.query(Sport).filter(Sport.name == name).first()
            if sport is None:
                sport = Sport(name=name, description=description)
                db.add(sport)
                db.flush()
            sports[name] = sport

        for sport_name, name, country in LEAGUES:
            sport = sports[sport_name]
            exists = db.query(League).filter(
                League.sport_id == sport.id, League.name == name
            ).first()
            if exists is None:
                db.add(League(sport_id=sport.id, name=name, country=country))

        for name, website in BOOKMAKERS:
            if db.query(Bookmaker).filter(Bookmaker.name == name).first() is None:
                db.add(Bookmaker(name=name, website=website))
        db.commit()
        print(f"Catalog: {len(SPORTS)} sports, {len(LEAGUES)} leagues, {len(BOOKMAKERS)} bookmakers")

        if crud.get_user_by_email(db, args.admin_email):
            print(f"Admin {args.admin_email} already exists")
        elif not args.admin_password:
            print("No admin password given (--admin-password or ADMIN_PASSWORD); skipping admin")
        else:
            crud.create_user(
                db, args.admin_email, hash_password(args.admin_password),
                "Admin", "System", Role.ADMIN,
            )
            print(f"Admin {args.admin_email} created")
    finally:
        db.close()
        database.close()


if __name__ == "__main__":
    main()
