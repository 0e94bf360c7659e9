"""Contact form submissions: anyone may insert, only authenticated callers may read."""
from __future__ import annotations
import dataclasses
import datetime
from enum import Enum
import typing
import uuid
import meshguard

REQUIRED_FIELDS = ("name", "email", "message")


class Role(Enum):
    ANON = "anon"
    AUTHENTICATED = "authenticated"


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclasses.dataclass(frozen=True)
class ContactSubmission:
    name: str
    email: str
    message: str
    ip_address: typing.Optional[str] = None
    user_agent: typing.Optional[str] = None
    id: uuid.UUID = dataclasses.field(default_factory=uuid.uuid4)
    created_at: datetime.datetime = dataclasses.field(default_factory=_now)

    def __post_init__(self) -> None:
        for field_name in REQUIRED_FIELDS:
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise meshguard.SubmissionError(f"{field_name} is required")


@dataclasses.dataclass
class ContactStore:
    rows: typing.List[ContactSubmission] = dataclasses.field(default_factory=list)

    def insert(self, submission: ContactSubmission, role: Role = Role.ANON) -> None:
        if role is not Role.ANON:
            raise meshguard.AccessDenied(f"{role.value} callers may not insert submissions")
        if any(row.id == submission.id for row in self.rows):
            raise meshguard.SubmissionError(f"submission {submission.id} already exists")
        self.rows.append(submission)

    def select(self, role: Role) -> typing.List[ContactSubmission]:
        if role is not Role.AUTHENTICATED:
            raise meshguard.AccessDenied("only authenticated users may read submissions")
        return list(self.rows)
