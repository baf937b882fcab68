from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.payments import PackageOut
from app.services.catalog.service import CatalogService

router = APIRouter(tags=["packages"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("/packages")
def list_packages(response: Response, db: Session = Depends(get_db)) -> dict:
    """Active packages, cheapest first. Never cached: prices are live."""
    packages = CatalogService(db).list_active()
    response.headers.update(NO_CACHE_HEADERS)
    return {
        "success": True,
        "packages": [PackageOut.model_validate(p).model_dump() for p in packages],
    }
