#!/usr/bin/env python3
"""
Seed the default token packages (starter, growth, pro, agency) into an empty catalog.
Run from the project root: python -m scripts.seed_packages
or: PYTHONPATH=. python scripts/seed_packages.py
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.logging import configure_logging
from app.db.session import SessionLocal, init_db
from app.services.catalog.service import CatalogService


def main():
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        created = CatalogService(db).seed_default_packages()
        db.commit()
        if not created:
            print("Packages already present, nothing to seed.")
            return
        print(f"Seeded {created} packages:\n")
        for pkg in CatalogService(db).list_active():
            print(f"  {pkg.id:<8} {pkg.tokens:>4} tokens  {pkg.price:>5} {pkg.currency}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
