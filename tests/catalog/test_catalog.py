"""Tests for CatalogService — price authority and seeding."""
from app.models.token_package import TokenPackage
from app.services.catalog.service import CatalogService


class TestCatalog:
    def test_seed_creates_default_packages_once(self, db):
        svc = CatalogService(db)
        assert svc.seed_default_packages() == 4
        db.commit()
        assert svc.seed_default_packages() == 0
        assert db.query(TokenPackage).count() == 4

    def test_list_active_sorted_by_price_and_skips_inactive(self, db, packages):
        packages["pro"].is_active = False
        db.commit()
        ids = [p.id for p in CatalogService(db).list_active()]
        assert ids == ["starter", "growth", "agency"]

    def test_get_package_by_id(self, db, packages):
        svc = CatalogService(db)
        pkg = svc.get_package_by_id("growth")
        assert pkg.tokens == 50
        assert pkg.price == 650
        assert svc.get_package_by_id("missing") is None
        assert svc.get_package_by_id("") is None

    def test_inactive_package_is_not_found(self, db, packages):
        packages["starter"].is_active = False
        db.commit()
        assert CatalogService(db).get_package_by_id("starter") is None

    def test_validate_amount_uses_live_price(self, db, packages):
        svc = CatalogService(db)
        assert svc.validate_amount("starter", 150) is True
        assert svc.validate_amount("starter", 1) is False
        packages["starter"].price = 199
        db.commit()
        assert svc.validate_amount("starter", 150) is False
        assert svc.validate_amount("starter", 199) is True
        assert svc.validate_amount("missing", 150) is False
