"""
CatalogService — the only source of package price and token amount.
Never trust price/token values sent by the client: look the package up here.
"""
import logging

from sqlalchemy.orm import Session

from app.models.token_package import TokenPackage

logger = logging.getLogger(__name__)

DEFAULT_PACKAGES = (
    ("starter", "Starter", "Perfect for trying out video generation", 10, 150),
    ("growth", "Growth", "Great for content creators and small businesses", 50, 650),
    ("pro", "Pro", "Best value for regular users", 120, 1440),
    ("agency", "Agency", "For heavy usage and teams", 300, 3300),
)


class CatalogService:
    def __init__(self, db: Session):
        self.db = db

    def get_package_by_id(self, package_id: str) -> TokenPackage | None:
        """Active package or None. Reads storage every time (pricing must be live)."""
        if not package_id:
            return None
        pkg = self.db.query(TokenPackage).filter(TokenPackage.id == package_id).one_or_none()
        if pkg is None or not pkg.is_active:
            return None
        return pkg

    def list_active(self) -> list[TokenPackage]:
        """All active packages, cheapest first."""
        return (
            self.db.query(TokenPackage)
            .filter(TokenPackage.is_active.is_(True))
            .order_by(TokenPackage.price.asc())
            .all()
        )

    def validate_amount(self, package_id: str, amount: int) -> bool:
        """True iff the package exists, is active and its live price equals amount."""
        return self.amount_matches(self.get_package_by_id(package_id), amount)

    @staticmethod
    def amount_matches(pkg: TokenPackage | None, amount: int) -> bool:
        return pkg is not None and pkg.price == amount

    def seed_default_packages(self, currency: str = "INR") -> int:
        """Create default packages if the table is empty. Returns number of packages created."""
        existing = self.db.query(TokenPackage).count()
        if existing > 0:
            logger.info("packages_seed_skipped", extra={"tokens": existing})
            return 0
        for pid, name, description, tokens, price in DEFAULT_PACKAGES:
            self.db.add(
                TokenPackage(
                    id=pid,
                    name=name,
                    description=description,
                    tokens=tokens,
                    price=price,
                    currency=currency,
                    is_active=True,
                )
            )
        self.db.flush()
        logger.info("default_packages_seeded", extra={"tokens": len(DEFAULT_PACKAGES)})
        return len(DEFAULT_PACKAGES)
