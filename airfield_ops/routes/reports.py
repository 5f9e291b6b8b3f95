from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import require_permissions
from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, MaintenanceReport, MaintenanceTask
from ..schemas.reports import ReportRequest, ReportSave
from ..services.reports import REPORT_TYPES, date_range_bounds, generate_report, report_to_csv, report_to_pdf


router = APIRouter(prefix="/reports", tags=["reports"])
logger = structlog.get_logger(__name__)


def _serialize_report(r: MaintenanceReport) -> dict:
    return {
        "id": r.id,
        "title": r.title,
        "report_type": r.report_type,
        "date_range": r.date_range,
        "area": r.area,
        "user_id": r.user_id,
        "report_data": r.report_data,
        "csv_data": r.csv_data,
        "date_generated": r.date_generated.isoformat() if r.date_generated else None,
    }


def _build(db: Session, report_type: str, date_range: str, area: str) -> dict:
    if report_type not in REPORT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid report type")
    start, end = date_range_bounds(date_range)
    tasks = (
        db.query(MaintenanceTask)
        .filter(MaintenanceTask.date_reported >= start, MaintenanceTask.date_reported <= end)
        .order_by(MaintenanceTask.date_reported.desc())
        .all()
    )
    return generate_report(tasks, report_type, date_range, area, today=end)


@router.post("/generate")
def generate(body: ReportRequest, db: Session = Depends(get_db), _=Depends(require_permissions("generate_reports"))):
    return _build(db, body.report_type, body.date_range, body.area)


@router.get("/export")
def export(
    format: str = Query(default="csv", pattern="^(csv|pdf)$"),
    report_type: str = "maintenance",
    date_range: str = "week",
    area: str = "all",
    db: Session = Depends(get_db),
    _=Depends(require_permissions("generate_reports")),
):
    report = _build(db, report_type, date_range, area)
    filename = f"{report_type}-report-{date.today().isoformat()}.{format}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if format == "pdf":
        return Response(content=report_to_pdf(report, report_type), media_type="application/pdf", headers=headers)
    return Response(
        content=report_to_csv(report["data"], report_type),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )


@router.post("")
def save_report(
    body: ReportSave,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("generate_reports")),
):
    if body.report_type not in REPORT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid report type")
    csv_data = body.csv_data
    if csv_data is None and body.report_data:
        csv_data = report_to_csv(body.report_data.get("data") or [], body.report_type)
    row = MaintenanceReport(
        title=body.title,
        report_type=body.report_type,
        date_range=body.date_range,
        area=body.area,
        user_id=user.id,
        report_data=body.report_data,
        csv_data=csv_data,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("report_saved", report_id=row.id, report_type=row.report_type, user_id=user.id)
    return _serialize_report(row)


@router.get("")
def list_reports(
    report_type: Optional[str] = None,
    area: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_permissions("generate_reports")),
):
    q = db.query(MaintenanceReport)
    if report_type:
        q = q.filter(MaintenanceReport.report_type == report_type)
    if area and area != "all":
        q = q.filter(MaintenanceReport.area == area)
    if user_id:
        q = q.filter(MaintenanceReport.user_id == user_id)
    rows = q.order_by(MaintenanceReport.date_generated.desc()).limit(limit or settings.report_list_limit).all()
    return [_serialize_report(r) for r in rows]
