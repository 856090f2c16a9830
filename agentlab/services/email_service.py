"""
Email sending service.

Emails are not delivered anywhere; each "sent" email is appended to a JSON
outbox so approved HITL actions leave an auditable trace.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from agentlab.config import settings
from agentlab.services.persistence import JsonPersistence

logger = logging.getLogger(__name__)


class SentEmail(BaseModel):
    id: str
    to: str
    subject: str
    content: str
    sent_at: str


class Outbox(BaseModel):
    emails: list[SentEmail] = Field(default_factory=list)


class EmailService:
    def __init__(self, path: str | Path | None = None) -> None:
        self._db = JsonPersistence(
            path or Path(settings.data_dir) / "sent_emails.json", Outbox,
        )

    async def send_email(self, to: str, subject: str, content: str) -> SentEmail:
        email = SentEmail(
            id=str(uuid.uuid4()),
            to=to,
            subject=subject,
            content=content,
            sent_at=datetime.now(UTC).isoformat(),
        )
        await self._db.update(lambda outbox: outbox.emails.append(email))
        logger.info("Sent email %s to %s: %s", email.id, to, subject)
        return email

    async def sent_emails(self) -> list[SentEmail]:
        return (await self._db.load()).emails
