"""
Maintenance, equipment and safety reports built from maintenance task rows, plus
CSV and PDF renderings of a generated report.
"""
import calendar
import csv
import io
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .maintenance import COMPLETED, CRITICAL_PRIORITIES, PENDING_STATUSES, serialize_task


REPORT_TYPES = ("maintenance", "equipment", "safety")

TITLES = {
    "maintenance": "Maintenance Tasks Report",
    "equipment": "Equipment Status Report",
    "safety": "Safety Compliance Report",
}

CSV_HEADERS = {
    "maintenance": ["ID", "Type", "Description", "Location", "Area", "Status", "Priority", "Reported Date"],
    "equipment": ["Location", "Total Issues", "Pending", "Completed", "Working Percentage"],
    "safety": ["Area", "Critical Issues", "Resolved Issues", "Compliance Percentage"],
}


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up."""
    value = Decimal(part * 100) / Decimal(whole)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def date_range_bounds(date_range: str, today: Optional[date] = None) -> Tuple[date, date]:
    today = today or date.today()
    if date_range == "day":
        start = today - timedelta(days=1)
    elif date_range == "month":
        start = _months_back(today, 1)
    elif date_range == "quarter":
        start = _months_back(today, 3)
    elif date_range == "year":
        start = _months_back(today, 12)
    else:
        start = today - timedelta(days=7)
    return start, today


def _get(task: Any, key: str):
    if isinstance(task, dict):
        return task.get(key)
    return getattr(task, key, None)


def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def filter_tasks(tasks: Iterable[Any], date_range: str, area: str = "all", today: Optional[date] = None) -> List[Any]:
    start, end = date_range_bounds(date_range, today)
    selected = []
    for task in tasks:
        reported = _as_date(_get(task, "date_reported"))
        if reported is None or not (start <= reported <= end):
            continue
        if area and area != "all" and _get(task, "area") != area:
            continue
        selected.append(task)
    return selected


def _task_row(task: Any) -> Dict[str, Any]:
    if isinstance(task, dict):
        return dict(task)
    return serialize_task(task)


def _maintenance_report(tasks: List[Any]) -> Dict[str, Any]:
    pending = sum(1 for t in tasks if _get(t, "status") in PENDING_STATUSES)
    completed = sum(1 for t in tasks if _get(t, "status") == COMPLETED)
    critical = sum(1 for t in tasks if _get(t, "priority") in CRITICAL_PRIORITIES)

    type_counts: "OrderedDict[str, int]" = OrderedDict()
    for t in tasks:
        kind = _get(t, "type") or ""
        type_counts[kind] = type_counts.get(kind, 0) + 1

    return {
        "data": [_task_row(t) for t in tasks],
        "summary": {
            "total": len(tasks),
            "pending": pending,
            "completed": completed,
            "critical": critical,
            "completion": percent(completed, len(tasks)) if tasks else 0,
        },
        "chart_data": [{"name": kind[:1].upper() + kind[1:], "value": n} for kind, n in type_counts.items()],
    }


def _equipment_report(tasks: List[Any]) -> Dict[str, Any]:
    by_location: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    by_fitting: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for t in tasks:
        done = _get(t, "status") == COMPLETED
        loc = by_location.setdefault(_get(t, "location"), {"total": 0, "pending": 0, "completed": 0})
        loc["total"] += 1
        loc["completed" if done else "pending"] += 1

        fitting = _get(t, "fitting")
        if fitting:
            fit = by_fitting.setdefault(fitting, {"name": fitting, "pending": 0, "completed": 0, "total": 0})
            fit["total"] += 1
            fit["completed" if done else "pending"] += 1

    total = sum(v["total"] for v in by_location.values())
    working = sum(v["completed"] for v in by_location.values())
    return {
        "data": [{"location": name, **counts} for name, counts in by_location.items()],
        "summary": {
            "totalFittings": total,
            "workingFittings": working,
            "operationalPercentage": percent(working, total) if total > 0 else 100,
        },
        "chart_data": list(by_fitting.values()),
    }


def _safety_report(tasks: List[Any]) -> Dict[str, Any]:
    areas: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    for t in tasks:
        metrics = areas.setdefault(_get(t, "area"), {"criticalIssues": 0, "resolvedCritical": 0})
        if _get(t, "priority") in CRITICAL_PRIORITIES:
            metrics["criticalIssues"] += 1
            if _get(t, "status") == COMPLETED:
                metrics["resolvedCritical"] += 1

    data = []
    for name, m in areas.items():
        compliance = percent(m["resolvedCritical"], m["criticalIssues"]) if m["criticalIssues"] > 0 else 100
        data.append({"area": name, **m, "compliance": compliance})

    total_critical = sum(m["criticalIssues"] for m in areas.values())
    total_resolved = sum(m["resolvedCritical"] for m in areas.values())
    return {
        "data": data,
        "summary": {
            "totalCritical": total_critical,
            "totalResolved": total_resolved,
            "overallCompliance": percent(total_resolved, total_critical) if total_critical > 0 else 100,
        },
        "chart_data": data,
    }


_BUILDERS = {
    "maintenance": _maintenance_report,
    "equipment": _equipment_report,
    "safety": _safety_report,
}


def generate_report(
    tasks: Iterable[Any],
    report_type: str,
    date_range: str = "week",
    area: str = "all",
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Build a report over tasks reported within the date range (and area, unless "all").

    Tasks may be ORM rows or dicts with the maintenance_tasks column names. Tasks
    without a reported date never match a range.
    """
    builder = _BUILDERS.get(report_type)
    if builder is None:
        raise ValueError(f"Unknown report type: {report_type}")
    report = builder(filter_tasks(tasks, date_range, area, today))
    report["title"] = TITLES[report_type]
    return report


def _csv_values(item: Dict[str, Any], report_type: str) -> List[Any]:
    if report_type == "maintenance":
        reported = _as_date(item.get("date_reported"))
        return [
            item.get("id"),
            item.get("type") or "",
            (item.get("description") or "").replace(",", " "),
            item.get("location") or "",
            item.get("area") or "",
            item.get("status") or "",
            item.get("priority") or "",
            reported.isoformat() if reported else "",
        ]
    if report_type == "equipment":
        total = item.get("total") or 0
        completed = item.get("completed") or 0
        return [
            item.get("location") or "",
            total,
            item.get("pending") or 0,
            completed,
            f"{percent(completed, total) if total else 0}%",
        ]
    return [
        item.get("area") or "",
        item.get("criticalIssues") or 0,
        item.get("resolvedCritical") or 0,
        f"{item.get('compliance') or 0}%",
    ]


def report_to_csv(data: List[Dict[str, Any]], report_type: str) -> str:
    if not data or report_type not in CSV_HEADERS:
        return ""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS[report_type])
    for item in data:
        writer.writerow(_csv_values(item, report_type))
    return buf.getvalue().rstrip("\n")


def report_to_pdf(report: Dict[str, Any], report_type: str) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), title=report.get("title") or "Report",
                            leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36)
    styles = getSampleStyleSheet()
    story = [
        Paragraph(report.get("title") or TITLES.get(report_type, "Report"), styles["Title"]),
        Paragraph(f"Generated {date.today().isoformat()}", styles["Normal"]),
        Spacer(1, 12),
    ]

    summary = report.get("summary") or {}
    if summary:
        summary_table = Table([[str(k), str(v)] for k, v in summary.items()], colWidths=[180, 120], hAlign="LEFT")
        summary_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
        ]))
        story += [summary_table, Spacer(1, 16)]

    data = report.get("data") or []
    if data and report_type in CSV_HEADERS:
        rows = [CSV_HEADERS[report_type]] + [
            ["" if v is None else str(v) for v in _csv_values(item, report_type)] for item in data
        ]
        table = Table(rows, repeatRows=1)
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        story.append(table)
    else:
        story.append(Paragraph("No tasks in the selected range.", styles["Italic"]))

    doc.build(story)
    return buf.getvalue()
