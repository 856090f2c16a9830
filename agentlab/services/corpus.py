# =============================================================================
# Corpus Loading — Emails and Long-Form Text
# =============================================================================
#
# Two corpora feed the retrieval components:
#   - an email archive (JSON array of email objects) searched with BM25,
#     embeddings and rank fusion
#   - a long markdown book, chunked before it can be searched
#
# DESIGN DECISION: Pydantic model for emails.
# The dataset uses camelCase keys and a "from" field (a Python keyword).
# Field aliases map them onto snake_case attributes while validation
# catches malformed records at load time rather than mid-search.
# =============================================================================

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Email(BaseModel):
    """A single email from the archive."""

    id: str
    sender: str = Field(alias="from")
    to: str
    subject: str
    body: str
    timestamp: str
    thread_id: str | None = Field(default=None, alias="threadId")
    in_reply_to: str | None = Field(default=None, alias="inReplyTo")
    references: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def load_emails(path: str | Path) -> list[Email]:
    """
    Load and validate the email archive.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a JSON array.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise FileNotFoundError(f"Email archive not found at {filepath}")

    with open(filepath, encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise ValueError(
            f"Email archive at {filepath} must be a JSON array"
        )

    emails = [Email.model_validate(item) for item in raw]
    logger.info("Loaded %d emails from %s", len(emails), filepath)
    return emails


def email_to_text(email: Email) -> str:
    """The text indexed for an email: subject followed by body."""
    return f"{email.subject} {email.body}"


def load_text(path: str | Path) -> str:
    """Load a plain-text or markdown document."""
    filepath = Path(path)
    if not filepath.exists():
        raise FileNotFoundError(f"Document not found at {filepath}")
    return filepath.read_text(encoding="utf-8")
