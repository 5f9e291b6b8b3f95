from typing import Optional, Any, Dict

from pydantic import BaseModel


class ReportRequest(BaseModel):
    report_type: str = "maintenance"  # maintenance|equipment|safety
    date_range: str = "week"  # day|week|month|quarter|year
    area: str = "all"


class ReportSave(BaseModel):
    title: str
    report_type: str
    date_range: Optional[str] = None
    area: Optional[str] = None
    report_data: Optional[Dict[str, Any]] = None
    csv_data: Optional[str] = None
