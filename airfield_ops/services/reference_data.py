"""
Bundled airfield reference data: served when the reference tables are empty and
used by the seed/migration scripts.
"""
from datetime import date
from typing import Dict, List

import structlog
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash
from ..models.models import (
    Area,
    AuthUser,
    Fitting,
    HandoverNote,
    HandoverTask,
    Location,
    MaintenanceTask,
    Permission,
    Shift,
    User,
    UserShift,
)
from .permissions import permissions_for_role


logger = structlog.get_logger(__name__)


SHIFTS = [
    {"id": "morning", "name": "Morning", "start_time": "06:00", "end_time": "18:00"},
    {"id": "night", "name": "Night", "start_time": "18:00", "end_time": "06:00"},
]

AREAS = [
    {"id": "runways", "name": "Runways"},
    {"id": "taxiways", "name": "Taxiways"},
    {"id": "aprons", "name": "Aprons"},
    {"id": "approach", "name": "Approach Areas"},
]

LOCATIONS = [
    {"id": "rw-30l", "name": "Runway 30L", "area_id": "runways"},
    {"id": "rw-30r", "name": "Runway 30R", "area_id": "runways"},
    {"id": "rw-12l", "name": "Runway 12L", "area_id": "runways"},
    {"id": "rw-12r", "name": "Runway 12R", "area_id": "runways"},
    {"id": "tw-a", "name": "Taxiway A", "area_id": "taxiways"},
    {"id": "tw-b", "name": "Taxiway B", "area_id": "taxiways"},
    {"id": "tw-c", "name": "Taxiway C", "area_id": "taxiways"},
    {"id": "tw-d", "name": "Taxiway D", "area_id": "taxiways"},
    {"id": "ap-1", "name": "Apron 1", "area_id": "aprons"},
    {"id": "ap-2", "name": "Apron 2", "area_id": "aprons"},
    {"id": "ap-3", "name": "Apron 3", "area_id": "aprons"},
]

FITTINGS = [
    {"id": "runway-cl", "name": "Runway Centerline Light", "area_id": "runways"},
    {"id": "runway-el", "name": "Runway Edge Light", "area_id": "runways"},
    {"id": "runway-thr", "name": "Runway Threshold Light", "area_id": "runways"},
    {"id": "runway-td", "name": "Touchdown Zone Light", "area_id": "runways"},
    {"id": "runway-end", "name": "Runway End Light", "area_id": "runways"},
    {"id": "taxiway-cl", "name": "Taxiway Centerline Light", "area_id": "taxiways"},
    {"id": "taxiway-el", "name": "Taxiway Edge Light", "area_id": "taxiways"},
    {"id": "taxiway-sb", "name": "Stop Bar Light", "area_id": "taxiways"},
    {"id": "taxiway-exit", "name": "Runway Lead in / off", "area_id": "taxiways"},
    {"id": "apron-fl", "name": "Apron Floodlight", "area_id": "aprons"},
    {"id": "sign-man", "name": "Mandatory Sign Illumination", "area_id": "taxiways"},
    {"id": "sign-dir", "name": "Direction Sign Illumination", "area_id": "taxiways"},
    {"id": "sign-loc", "name": "Location Sign Illumination", "area_id": "taxiways"},
]

# Demo accounts. Legacy roles (supervisor, inspector) are mapped onto the current role set.
DEMO_USERS = [
    {"username": "admin", "name": "Administrator", "email": "admin@airport.com", "role": "admin", "shift": "Regular"},
    {"username": "jsmith", "name": "John Smith", "email": "john.smith@airport.com", "role": "admin", "shift": "A"},
    {"username": "mjohnson", "name": "Maria Johnson", "email": "maria.johnson@airport.com", "role": "shift_leader", "shift": "B"},
    {"username": "tpatel", "name": "Tej Patel", "email": "tej.patel@airport.com", "role": "technician", "shift": "C"},
    {"username": "rgarcia", "name": "Rosa Garcia", "email": "rosa.garcia@airport.com", "role": "engineer", "shift": "D"},
]

DEMO_TASKS = [
    {"id": "MT001", "type": "corrective", "area": "runways", "location": "Runway 30L", "fitting": "Runway Centerline Light",
     "fitting_number": "RCL-30L-42", "description": "Centerline light not working at 1200ft from threshold",
     "status": "Pending", "priority": "high", "date_reported": "2025-07-05",
     "reported_by": "Tej Patel", "assigned_to": "Rosa Garcia"},
    {"id": "MT002", "type": "preventive", "area": "taxiways", "location": "Taxiway A", "fitting": "Taxiway Edge Light",
     "fitting_number": "TEL-A-15", "description": "Monthly inspection of taxiway edge lights",
     "status": "Completed", "priority": "medium", "date_reported": "2025-07-02", "completed_date": "2025-07-03",
     "reported_by": "Maria Johnson", "assigned_to": "Tej Patel"},
    {"id": "MT003", "type": "corrective", "area": "runways", "location": "Runway 12R", "fitting": "Runway Threshold Light",
     "fitting_number": "RTL-12R-03", "description": "Threshold light damaged by aircraft",
     "status": "In Progress", "priority": "critical", "date_reported": "2025-07-07",
     "reported_by": "John Smith", "assigned_to": "Rosa Garcia"},
    {"id": "MT004", "type": "preventive", "area": "aprons", "location": "Apron 2", "fitting": "Apron Floodlight",
     "fitting_number": "AFL-A2-08", "description": "Quarterly inspection of floodlight towers",
     "status": "Scheduled", "priority": "medium", "scheduled_date": "2025-07-10",
     "reported_by": "Maria Johnson", "assigned_to": "Tej Patel"},
    {"id": "MT005", "type": "corrective", "area": "taxiways", "location": "Taxiway C", "fitting": "Mandatory Sign",
     "fitting_number": "MS-C-04", "description": "Sign illumination intermittent",
     "status": "Pending", "priority": "high", "date_reported": "2025-07-06",
     "reported_by": "Rosa Garcia", "assigned_to": "Tej Patel"},
    {"id": "MT006", "type": "preventive", "area": "runways", "location": "Runway 30R", "fitting": "Runway Edge Light",
     "fitting_number": "REL-30R-22", "description": "Periodic inspection of runway edge lighting circuits",
     "status": "Scheduled", "priority": "medium", "scheduled_date": "2025-07-15",
     "reported_by": "John Smith", "assigned_to": "Maria Johnson"},
    {"id": "MT007", "type": "corrective", "area": "approach", "location": "Runway 30L Approach", "fitting": "Approach Light",
     "fitting_number": "AL-30L-12", "description": "Three sequential flashing lights not working",
     "status": "Completed", "priority": "critical", "date_reported": "2025-07-01", "completed_date": "2025-07-01",
     "reported_by": "Tej Patel", "assigned_to": "Rosa Garcia"},
    {"id": "MT008", "type": "preventive", "area": "taxiways", "location": "All Taxiways",
     "description": "Check for FOD on all taxiways",
     "status": "Scheduled", "priority": "medium", "scheduled_date": "2025-07-09",
     "reported_by": "Maria Johnson", "assigned_to": "Tej Patel"},
]

DEMO_HANDOVER_NOTES = [
    {
        "shift": "Night", "date": "2025-07-07", "author": "Rosa Garcia",
        "content": "Completed inspection of Runway 30L centerline lights. Found three inoperative lights at positions "
                   "1200ft, 3400ft, and 5100ft from threshold. Created maintenance tasks for all three. Taxiway A edge "
                   "lights all functioning properly after yesterday's replacements.",
        "tasks": [
            {"task_id": "MT001", "status": "Pending", "description": "Centerline light not working at 1200ft from threshold"},
            {"task_id": "MT009", "status": "Pending", "description": "Centerline light not working at 3400ft from threshold"},
            {"task_id": "MT010", "status": "Pending", "description": "Centerline light not working at 5100ft from threshold"},
        ],
    },
    {
        "shift": "Morning", "date": "2025-07-07", "author": "Tej Patel",
        "content": "Replaced two taxiway edge lights on Taxiway A. Started inspection of Runway 12R threshold lights but "
                   "had to stop due to increasing traffic. Will need to continue tomorrow. FOD check completed on all "
                   "operational runways, no issues found.",
        "tasks": [
            {"task_id": "MT002", "status": "Completed", "description": "Monthly inspection of taxiway edge lights"},
        ],
    },
    {
        "shift": "Night", "date": "2025-07-06", "author": "Maria Johnson",
        "content": "Conducted full inspection of Taxiway C signs. Found one mandatory sign with intermittent lighting "
                   "(MS-C-04). Created maintenance task for repair. Apron 2 floodlight inspection scheduled for July 10th.",
        "tasks": [
            {"task_id": "MT005", "status": "Pending", "description": "Sign illumination intermittent"},
            {"task_id": "MT004", "status": "Scheduled", "description": "Quarterly inspection of floodlight towers"},
        ],
    },
]


def locations_for_area(area_id: str) -> List[Dict]:
    return sorted((l for l in LOCATIONS if l["area_id"] == area_id), key=lambda l: l["name"])


def fittings_for_area(area_id: str) -> List[Dict]:
    return sorted((f for f in FITTINGS if f["area_id"] == area_id), key=lambda f: f["name"])


def _parse_date(value):
    return date.fromisoformat(value) if value else None


def seed_reference_data(db: Session) -> Dict[str, int]:
    """Insert any missing shifts, areas, locations and fittings. Existing ids are left untouched."""
    counts = {"shifts": 0, "areas": 0, "locations": 0, "fittings": 0}
    for row in SHIFTS:
        if db.get(Shift, row["id"]) is None:
            db.add(Shift(**row))
            counts["shifts"] += 1
    for row in AREAS:
        if db.get(Area, row["id"]) is None:
            db.add(Area(**row))
            counts["areas"] += 1
    db.flush()
    for row in LOCATIONS:
        if db.get(Location, row["id"]) is None:
            db.add(Location(**row))
            counts["locations"] += 1
    for row in FITTINGS:
        if db.get(Fitting, row["id"]) is None:
            db.add(Fitting(**row))
            counts["fittings"] += 1
    db.commit()
    logger.info("reference_data_seeded", **counts)
    return counts


def seed_demo_tasks(db: Session) -> int:
    created = 0
    for row in DEMO_TASKS:
        if db.get(MaintenanceTask, row["id"]) is not None:
            continue
        values = dict(row)
        for key in ("date_reported", "scheduled_date", "completed_date"):
            values[key] = _parse_date(values.get(key))
        values["reported_by_name"] = values.get("reported_by")
        db.add(MaintenanceTask(**values))
        created += 1
    db.commit()
    return created


def seed_demo_handover_notes(db: Session) -> int:
    created = 0
    for row in DEMO_HANDOVER_NOTES:
        note_date = _parse_date(row["date"])
        exists = db.query(HandoverNote).filter(
            HandoverNote.shift == row["shift"],
            HandoverNote.date == note_date,
            HandoverNote.author == row["author"],
        ).first()
        if exists:
            continue
        note = HandoverNote(shift=row["shift"], date=note_date, author=row["author"], content=row["content"])
        note.tasks = [HandoverTask(**t) for t in row["tasks"]]
        db.add(note)
        created += 1
    db.commit()
    return created


def seed_demo_users(db: Session, password: str) -> Dict[str, int]:
    """
    Create the demo accounts (auth user, users row, shift and permission grants).
    Accounts whose email already exists have their row role and shift refreshed instead.
    """
    counts = {"created": 0, "updated": 0}
    for demo in DEMO_USERS:
        auth_user = db.query(AuthUser).filter(AuthUser.email == demo["email"]).first()
        if auth_user is None:
            auth_user = AuthUser(
                email=demo["email"],
                password_hash=get_password_hash(password),
                user_metadata={k: demo[k] for k in ("role", "shift", "name", "username")},
            )
            db.add(auth_user)
            db.flush()
            counts["created"] += 1
        else:
            counts["updated"] += 1

        row = db.get(User, auth_user.id)
        if row is None:
            row = User(id=auth_user.id)
            db.add(row)
        row.username = demo["username"]
        row.name = demo["name"]
        row.email = demo["email"]
        row.role = demo["role"]
        row.shift = demo["shift"]

        if db.get(UserShift, auth_user.id) is None:
            db.add(UserShift(user_id=auth_user.id, shift=demo["shift"]))
        existing = {p.permission for p in db.query(Permission).filter(Permission.user_id == auth_user.id).all()}
        for perm in permissions_for_role(demo["role"]):
            if perm not in existing:
                db.add(Permission(user_id=auth_user.id, permission=perm))
    db.commit()
    logger.info("demo_users_seeded", **counts)
    return counts
