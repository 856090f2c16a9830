# =============================================================================
# Unit Tests — Dataset Loading
# =============================================================================

from __future__ import annotations

import json

import pytest

from agentlab.services.corpus import Email, email_to_text, load_emails, load_text


class TestLoadEmails:
    def test_aliases_and_optional_fields(self, tmp_path):
        path = tmp_path / "emails.json"
        path.write_text(json.dumps([{
            "id": "e1",
            "from": "sarah@x.com",
            "to": "me@x.com",
            "subject": "Lesson moved",
            "body": "Friday instead?",
            "timestamp": "2024-03-02T09:00:00Z",
            "threadId": "t1",
            "inReplyTo": "e0",
            "unexpected": "ignored",
        }]))

        [email] = load_emails(path)

        assert email.sender == "sarah@x.com"
        assert email.thread_id == "t1"
        assert email.in_reply_to == "e0"
        assert email.references == []
        assert email.model_dump(by_alias=True)["from"] == "sarah@x.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Email archive not found"):
            load_emails(tmp_path / "nope.json")

    def test_not_an_array(self, tmp_path):
        path = tmp_path / "emails.json"
        path.write_text('{"emails": []}')
        with pytest.raises(ValueError, match="must be a JSON array"):
            load_emails(path)


class TestText:
    def test_email_to_text(self):
        email = Email(
            id="e1", sender="a@x.com", to="b@x.com", subject="Survey",
            body="Monday 10am", timestamp="t",
        )
        assert email_to_text(email) == "Survey Monday 10am"

    def test_load_text(self, tmp_path):
        path = tmp_path / "book.md"
        path.write_text("# Title\n\nBody", encoding="utf-8")
        assert load_text(path) == "# Title\n\nBody"

    def test_load_text_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_text(tmp_path / "book.md")
