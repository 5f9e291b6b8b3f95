from datetime import date as date_type
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator


class TaskBase(BaseModel):
    type: Optional[str] = "corrective"
    area: Optional[str] = None
    location: Optional[str] = None
    fitting: Optional[str] = None
    fitting_number: Optional[str] = None
    description: Optional[str] = ""
    status: Optional[str] = "Pending"
    priority: Optional[str] = "medium"
    date_reported: Optional[date_type] = None
    scheduled_date: Optional[date_type] = None
    completed_date: Optional[date_type] = None
    reported_by: Optional[str] = None
    reported_by_name: Optional[str] = None
    assigned_to: Optional[str] = None

    @field_validator('area', 'location', 'fitting', 'fitting_number', 'reported_by', 'reported_by_name', 'assigned_to', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('date_reported', 'scheduled_date', 'completed_date', mode='before')
    @classmethod
    def empty_date_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator('type', 'status', 'priority')
    @classmethod
    def not_null(cls, v, info):
        # columns are NOT NULL; omit the field to keep the stored or default value
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class TaskCreate(TaskBase):
    id: Optional[str] = None


class TaskUpdate(TaskBase):
    # every field optional on patch; defaults must not overwrite stored values
    type: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None


class ReportedFitting(BaseModel):
    fitting: str
    fitting_number: Optional[str] = Field(default=None, alias="fittingNumber")

    class Config:
        populate_by_name = True


class DailyReportRequest(BaseModel):
    area: Optional[str] = None
    location: Optional[str] = None
    maintenance_type: str = Field(default="corrective", alias="maintenanceType")
    fittings: List[ReportedFitting] = []
    description: Optional[str] = ""

    class Config:
        populate_by_name = True


class HandoverTaskIn(BaseModel):
    task_id: Optional[str] = Field(default=None, alias="taskId")
    status: Optional[str] = None
    description: Optional[str] = None

    class Config:
        populate_by_name = True


class HandoverNoteCreate(BaseModel):
    shift: str
    date: date_type
    author: Optional[str] = None
    content: str
    tasks: List[HandoverTaskIn] = []

    @field_validator('shift', 'content', mode='before')
    @classmethod
    def strip_required(cls, v):
        if v is None:
            return v
        return str(v).strip()
