from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import require_permissions
from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, MaintenanceTask
from ..schemas.maintenance import DailyReportRequest, TaskCreate, TaskUpdate
from ..services.maintenance import (
    COMPLETED,
    build_daily_report_task,
    calendar_window,
    new_task_id,
    reporter_identity,
    schedule_for_window,
    serialize_task,
)
from ..services.validation import validate_daily_report


router = APIRouter(prefix="/maintenance-tasks", tags=["maintenance"])
logger = structlog.get_logger(__name__)


def _get_task(db: Session, task_id: str) -> MaintenanceTask:
    task = db.query(MaintenanceTask).filter(MaintenanceTask.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("")
def list_tasks(
    status: Optional[str] = None,
    area: Optional[str] = None,
    assigned_to: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    _=Depends(require_permissions("view_tasks")),
):
    q = db.query(MaintenanceTask)
    if status:
        q = q.filter(MaintenanceTask.status == status)
    if area and area != "all":
        q = q.filter(MaintenanceTask.area == area)
    if assigned_to:
        q = q.filter(MaintenanceTask.assigned_to == assigned_to)
    rows = (
        q.order_by(MaintenanceTask.date_reported.desc(), MaintenanceTask.created_at.desc())
        .limit(limit or settings.task_list_limit)
        .all()
    )
    return [serialize_task(t) for t in rows]


@router.post("")
def create_task(
    body: TaskCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("create_tasks")),
):
    data = body.model_dump()
    task_id = data.pop("id", None) or new_task_id()
    if db.query(MaintenanceTask).filter(MaintenanceTask.id == task_id).first():
        raise HTTPException(status_code=409, detail="Task id already exists")
    if not data.get("date_reported"):
        data["date_reported"] = date.today()
    identity = reporter_identity(db, user)
    for key in ("reported_by", "reported_by_name"):
        if not data.get(key):
            data[key] = identity[key]
    task = MaintenanceTask(id=task_id, **data)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("task_created", task_id=task.id, user_id=user.id)
    return serialize_task(task)


@router.post("/daily-report")
def submit_daily_report(
    body: DailyReportRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("create_tasks", "update_task_status")),
):
    report = body.model_dump()
    message = validate_daily_report(report)
    if message:
        raise HTTPException(status_code=400, detail=message)
    task = build_daily_report_task(db, report, user)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("daily_report_submitted", task_id=task.id, user_id=user.id, fittings=len(report["fittings"]))
    result = serialize_task(task)
    result["fittings"] = report["fittings"]
    return result


@router.get("/schedule")
def schedule(
    view: str = Query(default="week", pattern="^(week|month)$"),
    anchor: Optional[date] = None,
    db: Session = Depends(get_db),
    _=Depends(require_permissions("view_tasks")),
):
    days = calendar_window(view, anchor or date.today())
    start, end = days[0], days[-1]
    tasks = (
        db.query(MaintenanceTask)
        .filter(
            ((MaintenanceTask.scheduled_date >= start) & (MaintenanceTask.scheduled_date <= end))
            | (
                MaintenanceTask.scheduled_date.is_(None)
                & (MaintenanceTask.date_reported >= start)
                & (MaintenanceTask.date_reported <= end)
            )
        )
        .order_by(MaintenanceTask.id.asc())
        .all()
    )
    return {
        "view": view,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "days": schedule_for_window(tasks, days),
    }


@router.get("/{task_id}")
def get_task(task_id: str, db: Session = Depends(get_db), _=Depends(require_permissions("view_tasks"))):
    return serialize_task(_get_task(db, task_id))


@router.patch("/{task_id}")
def update_task(
    task_id: str,
    body: TaskUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("edit_tasks", "update_task_status", "assign_tasks")),
):
    task = _get_task(db, task_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(task, key, value)
    db.commit()
    db.refresh(task)
    logger.info("task_updated", task_id=task_id, user_id=user.id)
    return serialize_task(task)


@router.post("/{task_id}/complete")
def complete_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("edit_tasks", "update_task_status")),
):
    task = _get_task(db, task_id)
    task.status = COMPLETED
    task.completed_date = date.today()
    db.commit()
    db.refresh(task)
    logger.info("task_completed", task_id=task_id, user_id=user.id)
    return serialize_task(task)


@router.delete("/{task_id}")
def delete_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_permissions("edit_tasks")),
):
    task = _get_task(db, task_id)
    db.delete(task)
    db.commit()
    logger.info("task_deleted", task_id=task_id, user_id=user.id)
    return {"status": "ok"}
