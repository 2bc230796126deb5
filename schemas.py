"""
Database Schemas for the Realty CRM

Each Pydantic model describes a document (or an embedded sub-document) stored
in MongoDB. Collections:
- leads (Lead, with embedded Showing and Task lists)
- events (Event)
- users (User)
- inventory, favorites, reminders
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ---- Enumerations ----

LeadStatus = Literal["hot", "warm", "cold", "mild"]
LeadType = Literal["pre-construction", "resale", "seller", "buyer"]
LeadSource = Literal["google-ads", "meta", "referral", "linkedin", "youtube"]
ShowingStatus = Literal["scheduled", "completed", "cancelled"]
EventType = Literal["viewing", "meeting", "open-house", "follow-up", "call"]
TaskStatus = Literal["pending", "completed", "cancelled"]
TaskPriority = Literal["low", "medium", "high"]


class Document(BaseModel):
    # Documents keep whatever extra fields the client sends
    model_config = ConfigDict(extra="allow")


# ---- Lead and embedded documents ----

class Showing(Document):
    id: Optional[str] = None
    date: str = Field(..., description="ISO date of the viewing")
    time: Optional[str] = None
    property: Optional[str] = Field(default=None, description="Address of the property shown")
    notes: Optional[str] = None
    status: ShowingStatus = "scheduled"
    createdAt: Optional[str] = None


class Task(Document):
    id: Optional[str] = None
    title: str
    date: str
    description: Optional[str] = None
    status: TaskStatus = "pending"
    priority: TaskPriority = "medium"


class TaskUpdate(Document):
    title: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None


class NoteEntry(BaseModel):
    id: str
    timestamp: str
    content: str
    leadName: str


class LeadCreate(Document):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id", description="Client-supplied identifier")
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    leadStatus: Optional[LeadStatus] = None
    leadType: Optional[LeadType] = None
    leadSource: Optional[LeadSource] = None
    leadResponse: Optional[str] = None
    clientType: Optional[str] = None
    assignedTo: Optional[str] = None
    notes: Optional[str] = None
    showings: List[Showing] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    propertyPreferences: Optional[Dict[str, Any]] = None


class ShowingsReplace(BaseModel):
    showings: List[Showing]


# ---- Events ----

class EventCreate(Document):
    title: str
    date: str
    time: Optional[str] = None
    type: EventType = "meeting"
    description: Optional[str] = None
    location: Optional[str] = None
    status: str = "scheduled"


# ---- Users ----

class PermissionsUpdate(BaseModel):
    dashboard: Optional[bool] = None
    leads: Optional[bool] = None
    calendar: Optional[bool] = None
    email: Optional[bool] = None
    settings: Optional[bool] = None
    inventory: Optional[bool] = None
    favorites: Optional[bool] = None
    mls: Optional[bool] = None


class UserCreate(BaseModel):
    name: str
    email: str
    password: str
    role: str = "user"
    permissions: Optional[PermissionsUpdate] = None


class ProfileUpdate(BaseModel):
    name: str
    username: str
    phone: Optional[str] = None


class AvatarUpdate(BaseModel):
    avatarUrl: Optional[str] = None


class PermissionsRequest(BaseModel):
    permissions: PermissionsUpdate


# ---- Auth ----

class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str


class TokenRequest(BaseModel):
    token: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class CheckTokenRequest(BaseModel):
    token: str
    type: Literal["password-reset", "email-verification"]


class RefreshRequest(BaseModel):
    refreshToken: str


class PasswordRequest(BaseModel):
    password: str


# ---- Notifications ----

class SendEmailRequest(BaseModel):
    to: Any
    subject: str
    text: str
    html: Optional[str] = None
    cc: Optional[Any] = None
    bcc: Optional[Any] = None


class ReminderCreate(BaseModel):
    userId: str
    phoneNumber: str
    message: str
    scheduledTime: str


# ---- Favorites ----

class FavoriteToggle(BaseModel):
    userId: str
    property: Dict[str, Any]


class UserRef(BaseModel):
    userId: str
