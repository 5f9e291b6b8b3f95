import calendar
import time
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.models import AuthUser, MaintenanceTask, User


PENDING_STATUSES = ("Pending", "In Progress")
CRITICAL_PRIORITIES = ("critical", "high")
COMPLETED = "Completed"


def new_task_id() -> str:
    return f"TASK-{int(time.time() * 1000)}"


def daily_report_id(db: Session, day: date) -> str:
    """Next free DR-<date>-<n> id for the day."""
    prefix = f"DR-{day.isoformat()}-"
    taken = {
        row[0] for row in db.query(MaintenanceTask.id).filter(MaintenanceTask.id.like(f"{prefix}%")).all()
    }
    n = len(taken) + 1
    while f"{prefix}{n}" in taken:
        n += 1
    return f"{prefix}{n}"


def serialize_task(task: MaintenanceTask) -> dict:
    return {
        "id": task.id,
        "type": task.type,
        "area": task.area,
        "location": task.location,
        "fitting": task.fitting,
        "fitting_number": task.fitting_number,
        "description": task.description or "",
        "status": task.status,
        "priority": task.priority,
        "date_reported": task.date_reported.isoformat() if task.date_reported else None,
        "scheduled_date": task.scheduled_date.isoformat() if task.scheduled_date else None,
        "completed_date": task.completed_date.isoformat() if task.completed_date else None,
        "reported_by": task.reported_by,
        "reported_by_name": task.reported_by_name,
        "assigned_to": task.assigned_to,
        "created_at": task.created_at.isoformat() if task.created_at else None,
    }


def reporter_identity(db: Session, user: AuthUser) -> Dict[str, str]:
    """reported_by / reported_by_name / assigned_to for a task filed by the signed-in user."""
    row = db.query(User).filter(User.id == user.id).first()
    meta = user.user_metadata or {}
    username = (row.username if row else None) or meta.get("username")
    name = (row.name if row else None) or meta.get("name")
    return {
        "reported_by": user.id,
        "reported_by_name": name or username or "Anonymous User",
        "assigned_to": username or name or "Unassigned",
    }


def build_daily_report_task(db: Session, report: dict, user: AuthUser, today: Optional[date] = None) -> MaintenanceTask:
    """Only the first fitting is recorded on the task; the rest stay on the form."""
    today = today or date.today()
    fittings = report.get("fittings") or []
    first = fittings[0] if fittings else {}
    maintenance_type = report.get("maintenance_type") or "corrective"
    return MaintenanceTask(
        id=daily_report_id(db, today),
        type=maintenance_type,
        area=report.get("area"),
        location=report.get("location"),
        fitting=first.get("fitting"),
        fitting_number=first.get("fitting_number"),
        description=report.get("description") or "",
        status="Pending",
        priority="high" if maintenance_type == "corrective" else "medium",
        date_reported=today,
        **reporter_identity(db, user),
    )


def calendar_window(view: str, anchor: date) -> List[date]:
    """Week view runs Monday to Sunday around the anchor; month view covers every day of its month."""
    if view == "month":
        first = anchor.replace(day=1)
        days = calendar.monthrange(anchor.year, anchor.month)[1]
        return [first + timedelta(days=i) for i in range(days)]
    monday = anchor - timedelta(days=anchor.weekday())
    return [monday + timedelta(days=i) for i in range(7)]


def task_calendar_date(task: MaintenanceTask) -> Optional[date]:
    return task.scheduled_date or task.date_reported


def schedule_for_window(tasks: List[MaintenanceTask], days: List[date]) -> "OrderedDict[str, List[dict]]":
    buckets: "OrderedDict[str, List[dict]]" = OrderedDict((d.isoformat(), []) for d in days)
    for task in tasks:
        when = task_calendar_date(task)
        if when is None:
            continue
        key = when.isoformat()
        if key in buckets:
            buckets[key].append(serialize_task(task))
    return buckets


def dashboard_summary(tasks: List[MaintenanceTask]) -> dict:
    counts = {
        "total": len(tasks),
        "pending": sum(1 for t in tasks if t.status == "Pending"),
        "in_progress": sum(1 for t in tasks if t.status == "In Progress"),
        "completed": sum(1 for t in tasks if t.status == COMPLETED),
        "critical": sum(1 for t in tasks if t.priority == "critical" and t.status != COMPLETED),
    }

    series: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    dated = sorted((t for t in tasks if t.date_reported), key=lambda t: t.date_reported)
    for task in dated:
        key = task.date_reported.strftime("%Y-%m")
        bucket = series.setdefault(key, {"completed": 0, "pending": 0})
        if task.status == COMPLETED:
            bucket["completed"] += 1
        elif task.status in PENDING_STATUSES:
            bucket["pending"] += 1

    recent = sorted(
        tasks,
        key=lambda t: (t.date_reported or date.min, t.created_at.isoformat() if t.created_at else ""),
        reverse=True,
    )[:5]
    return {
        "counts": counts,
        "recent_tasks": [serialize_task(t) for t in recent],
        "task_completion": [
            {"month": key, "label": date(int(key[:4]), int(key[5:]), 1).strftime("%b"), **values}
            for key, values in series.items()
        ],
    }
