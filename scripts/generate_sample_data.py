#!/usr/bin/env python3
"""
Generate a small synthetic email archive and book for local runs.

The emails cover the topics the golden dataset and the demo prompts ask
about (a house survey, rescheduled singing lessons, an accompanist
invoice). The book is markdown with nested headings so the structural
chunker has something to split on. All content is synthetic.

Usage:
    uv run python scripts/generate_sample_data.py

Output:
    datasets/emails.json
    datasets/book.md
"""

import json
from pathlib import Path

from agentlab.config import settings
from agentlab.services.corpus import Email

EMAILS = [
    Email(
        id="email-001",
        sender="bookings@oakleysurveyors.co.uk",
        to="john.doe@example.com",
        subject="House survey booked for 12 Oak Street",
        body=(
            "Hi John,\n\nYour RICS Level 2 survey for 12 Oak Street is booked "
            "for Monday 14 April at 10am. The surveyor, Priya Shah, will need "
            "access to the loft and the boiler cupboard. The report follows "
            "within five working days.\n\nOakley Surveyors"
        ),
        timestamp="2025-04-02T09:14:00Z",
        thread_id="thread-survey",
        labels=["house"],
    ),
    Email(
        id="email-002",
        sender="priya.shah@oakleysurveyors.co.uk",
        to="john.doe@example.com",
        subject="Re: House survey booked for 12 Oak Street",
        body=(
            "Hi John,\n\nThe survey is complete. Main findings: damp in the "
            "rear bedroom wall, and the roof needs repointing within two "
            "years. Full report attached.\n\nPriya"
        ),
        timestamp="2025-04-16T17:40:00Z",
        thread_id="thread-survey",
        in_reply_to="email-001",
        references=["email-001"],
        labels=["house"],
    ),
    Email(
        id="email-003",
        sender="sarah.lewis@example.com",
        to="john.doe@example.com",
        subject="Can we move Thursday's lesson?",
        body=(
            "Hi John,\n\nI have a rehearsal on Thursday evening. Could we move "
            "my singing lesson to Friday at 4pm instead? I'd like to keep "
            "working on the breath support exercises from last week.\n\nSarah"
        ),
        timestamp="2025-04-07T12:03:00Z",
        thread_id="thread-sarah",
        labels=["students"],
    ),
    Email(
        id="email-004",
        sender="tom.baker@example.com",
        to="john.doe@example.com",
        subject="Audition piece",
        body=(
            "Hello,\n\nMy audition for the youth choir is on 3 May. They want "
            "one classical piece and one musical theatre piece. Could we pick "
            "both in our next lesson?\n\nThanks, Tom"
        ),
        timestamp="2025-04-09T18:21:00Z",
        thread_id="thread-tom",
        labels=["students"],
    ),
    Email(
        id="email-005",
        sender="maria@accompany.example.com",
        to="john.doe@example.com",
        subject="Invoice for March accompaniment",
        body=(
            "Dear John,\n\nPlease find my invoice for March: four sessions at "
            "£45, total £180. Payment within 14 days to the usual account "
            "would be lovely.\n\nBest, Maria"
        ),
        timestamp="2025-04-01T08:00:00Z",
        thread_id="thread-invoice",
        labels=["admin"],
    ),
    Email(
        id="email-006",
        sender="john.doe@example.com",
        to="sarah.lewis@example.com",
        subject="Re: Can we move Thursday's lesson?",
        body=(
            "Hi Sarah,\n\nFriday at 4pm works. See you then, and bring the "
            "Fauré we started.\n\nJohn"
        ),
        timestamp="2025-04-07T13:30:00Z",
        thread_id="thread-sarah",
        in_reply_to="email-003",
        references=["email-003"],
        labels=["students"],
    ),
]

BOOK = """# The Working Singer

A short handbook for singing teachers and their students.

## Part One: The Instrument

### Breath

Breath support starts from a relaxed, expanded ribcage. Ask students to
sigh on an unvoiced "f" and notice the gentle engagement low in the
abdomen. Avoid lifting the shoulders; the breath should feel wide rather
than high.

### Onset

A balanced onset is neither breathy nor glottal. Practise on short "ha"
and "a" alternations until the two meet in the middle.

### Resonance

Resonance is shaped by the vowel. Bright vowels such as "ee" sit forward;
darker vowels such as "oo" need space at the back of the mouth. Keep the
jaw released on every vowel.

## Part Two: Lessons

### Warm-ups

Every lesson begins with five minutes of lip trills and sirens across the
whole range. Shorten the warm-up rather than skip it when time is tight.

### Repertoire

Choose one piece that consolidates technique and one that stretches it.
For auditions, contrast styles: a classical art song alongside a musical
theatre number shows range.

### Practice between lessons

Short daily practice beats one long session. Twenty focused minutes with a
clear goal is plenty for most students.

## Part Three: Running a Studio

### Scheduling

Keep a regular weekly slot for each student and a clear policy for moving
lessons. Record every change in the calendar the same day.

### Notes

Write a few lines after each lesson: what worked, what to revisit, and
the next piece. Notes make progress visible to both teacher and student.
"""


def generate_sample_data():
    emails_path = Path(settings.emails_path)
    book_path = Path(settings.book_path)
    emails_path.parent.mkdir(parents=True, exist_ok=True)
    book_path.parent.mkdir(parents=True, exist_ok=True)

    with open(emails_path, "w", encoding="utf-8") as f:
        json.dump(
            [email.model_dump(by_alias=True) for email in EMAILS],
            f, indent=2, ensure_ascii=False,
        )
    print(f"Generated: {emails_path} ({len(EMAILS)} emails)")

    book_path.write_text(BOOK, encoding="utf-8")
    print(f"Generated: {book_path} ({len(BOOK):,} chars)")


if __name__ == "__main__":
    generate_sample_data()
