from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None
    username: Optional[str] = None
    shift: Optional[str] = None

    @field_validator('name', 'username', 'shift', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class LoginRequest(BaseModel):
    identifier: str  # username or email
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class AppUser(BaseModel):
    id: str
    username: str
    name: str
    email: str
    role: str
    shift: str = "Regular"
    avatar: Optional[str] = None
    permissions: List[str] = []


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[AppUser] = None
