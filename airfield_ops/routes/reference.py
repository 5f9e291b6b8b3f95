import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Area, Fitting, Location, Shift
from ..services import reference_data


router = APIRouter(tags=["reference"])
logger = structlog.get_logger(__name__)


@router.get("/shifts")
def list_shifts(db: Session = Depends(get_db), _=Depends(get_current_user)):
    rows = db.query(Shift).order_by(Shift.id.asc()).all()
    if not rows:
        logger.warning("reference_table_empty", table="shifts")
        return reference_data.SHIFTS
    return [{"id": s.id, "name": s.name, "start_time": s.start_time, "end_time": s.end_time} for s in rows]


@router.get("/areas")
def list_areas(db: Session = Depends(get_db), _=Depends(get_current_user)):
    rows = db.query(Area).order_by(Area.name.asc()).all()
    if not rows:
        logger.warning("reference_table_empty", table="areas")
        return sorted(reference_data.AREAS, key=lambda a: a["name"])
    return [{"id": a.id, "name": a.name} for a in rows]


@router.get("/areas/{area_id}/locations")
def list_locations(area_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    if db.query(Location).count() == 0:
        logger.warning("reference_table_empty", table="locations")
        return reference_data.locations_for_area(area_id)
    rows = db.query(Location).filter(Location.area_id == area_id).order_by(Location.name.asc()).all()
    return [{"id": l.id, "name": l.name, "area_id": l.area_id} for l in rows]


@router.get("/areas/{area_id}/fittings")
def list_fittings(area_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    if db.query(Fitting).count() == 0:
        logger.warning("reference_table_empty", table="fittings")
        return reference_data.fittings_for_area(area_id)
    rows = db.query(Fitting).filter(Fitting.area_id == area_id).order_by(Fitting.name.asc()).all()
    return [{"id": f.id, "name": f.name, "area_id": f.area_id} for f in rows]
