from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import date, datetime

# Collections: activity, announcement, attendance
# Field names follow the JSON keys the frontend sends (camelCase).

class ImagePair(BaseModel):
    before: str
    after: str

class ActivityBase(BaseModel):
    date: str
    time: str
    division: str
    zone: str
    userName: str
    numOfActivities: int

class ActivityIn(ActivityBase):
    time: str = Field(..., min_length=1)
    division: str = Field(..., min_length=1)
    zone: str = Field(..., min_length=1)
    userName: str = Field(..., min_length=1)
    numOfActivities: int = Field(..., ge=1)

    @field_validator("date")
    @classmethod
    def check_calendar_date(cls, value: str) -> str:
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            raise ValueError("must be a valid calendar date (YYYY-MM-DD)")

class AnnouncementIn(BaseModel):
    message: Optional[str] = None

class AttendanceIn(BaseModel):
    userName: str = Field(..., min_length=1)
    division: str = Field(..., min_length=1)
    event: str = Field(..., min_length=1)

# Response models (with id and creation time). Read models do not re-validate
# what is already stored, and older documents may lack created_at.
class DocumentMeta(BaseModel):
    id: str
    created_at: Optional[datetime] = None

class ActivityOut(ActivityBase, DocumentMeta):
    images: List[ImagePair] = []

class AnnouncementOut(DocumentMeta):
    message: str
    postedBy: str
    timestamp: datetime

class AttendanceOut(AttendanceIn, DocumentMeta):
    attended: bool

class ActivityCreated(BaseModel):
    message: str
    data: ActivityOut

class AnnouncementCreated(BaseModel):
    message: str
    data: AnnouncementOut

class AttendanceCreated(BaseModel):
    message: str
    data: AttendanceOut

class DashboardSummary(BaseModel):
    totalActivities: int
    totalUsers: int
    totalAnnouncements: int
