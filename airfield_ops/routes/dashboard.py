import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.security import require_permissions
from ..db import get_db
from ..models.models import MaintenanceTask
from ..services.maintenance import dashboard_summary


router = APIRouter(tags=["dashboard"])
logger = structlog.get_logger(__name__)


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _=Depends(require_permissions("view_tasks"))):
    return dashboard_summary(db.query(MaintenanceTask).all())


@router.get("/healthz")
def healthz(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("healthz_db_failed", error=str(e))
        return {"connected": False, "message": f"Database connection failed: {e}"}
    return {"connected": True, "message": "Database connection successful"}
