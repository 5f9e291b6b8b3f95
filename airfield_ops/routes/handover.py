from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, selectinload

from ..auth.security import get_current_user
from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, HandoverNote, HandoverTask, User
from ..schemas.maintenance import HandoverNoteCreate


router = APIRouter(prefix="/handover-notes", tags=["handover"])
logger = structlog.get_logger(__name__)


def _serialize_note(note: HandoverNote) -> dict:
    return {
        "id": note.id,
        "shift": note.shift,
        "date": note.date.isoformat() if note.date else None,
        "author": note.author,
        "content": note.content,
        "created_at": note.created_at.isoformat() if note.created_at else None,
        "tasks": [
            {"id": t.task_id, "status": t.status, "description": t.description}
            for t in note.tasks
        ],
    }


@router.get("")
def list_notes(
    shift: Optional[str] = None,
    author: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    q = db.query(HandoverNote).options(selectinload(HandoverNote.tasks))
    if shift:
        q = q.filter(HandoverNote.shift == shift)
    if author:
        q = q.filter(HandoverNote.author == author)
    if date_from:
        q = q.filter(HandoverNote.date >= date_from)
    if date_to:
        q = q.filter(HandoverNote.date <= date_to)
    rows = (
        q.order_by(HandoverNote.date.desc(), HandoverNote.created_at.desc())
        .limit(limit or settings.handover_list_limit)
        .all()
    )
    return [_serialize_note(n) for n in rows]


@router.post("")
def create_note(
    body: HandoverNoteCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    if not body.shift or not body.content:
        raise HTTPException(status_code=400, detail="Shift, date and content are required")
    author = body.author
    if not author:
        row = db.query(User).filter(User.id == user.id).first()
        author = (row.name if row else None) or (user.user_metadata or {}).get("name") or user.email

    # note and its task references are written together or not at all
    note = HandoverNote(shift=body.shift, date=body.date, author=author, content=body.content)
    note.tasks = [
        HandoverTask(task_id=t.task_id, status=t.status, description=t.description)
        for t in body.tasks
    ]
    db.add(note)
    db.commit()
    db.refresh(note)
    logger.info("handover_note_created", note_id=note.id, tasks=len(note.tasks), user_id=user.id)
    return _serialize_note(note)


@router.get("/{note_id}")
def get_note(note_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    note = db.query(HandoverNote).filter(HandoverNote.id == note_id).first()
    if not note:
        raise HTTPException(status_code=404, detail="Handover note not found")
    return _serialize_note(note)
