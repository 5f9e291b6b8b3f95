from typing import Optional

from pydantic import BaseModel, field_validator


class UserRowPatch(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = None
    shift: Optional[str] = None

    @field_validator('name', 'username', 'role', 'shift', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class UserShiftUpsert(BaseModel):
    shift: str
