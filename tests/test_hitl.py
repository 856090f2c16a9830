# =============================================================================
# Unit Tests — Human-in-the-Loop Email Assistant
# =============================================================================
#
# Tests decision pairing, execution, the diary rendering and full turns.
# Sent emails land in a JSON outbox under tmp_path.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from agentlab.agents.hitl import (
    ApprovalDecisionPart,
    ApprovalEndPart,
    ApprovalRequestPart,
    ApproveDecision,
    ChatMessage,
    DecisionToProcess,
    HITLError,
    RejectDecision,
    TextPart,
    ToolOutput,
    ToolRequiringApproval,
    execute_decisions,
    find_decisions_to_process,
    get_diary,
    run_hitl_turn,
    validate_messages,
)
from agentlab.services.email_service import EmailService


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _tool(tool_id: str = "t1") -> ToolRequiringApproval:
    return ToolRequiringApproval(
        id=tool_id, to="bob@example.com", subject="Lunch", content="Friday at 1?",
    )


def _user(*parts) -> ChatMessage:
    return ChatMessage(role="user", parts=list(parts))


def _assistant(*parts) -> ChatMessage:
    return ChatMessage(role="assistant", parts=list(parts))


# ---------------------------------------------------------------------------
# Test: Validation & decision pairing
# ---------------------------------------------------------------------------


class TestValidateMessages:
    def test_empty_rejected(self):
        with pytest.raises(HITLError) as exc:
            validate_messages([])
        assert exc.value.status == 400
        assert exc.value.message == "Messages array cannot be empty"

    def test_last_must_be_user(self):
        with pytest.raises(HITLError, match="Last message must be a user message"):
            validate_messages([_user(TextPart(text="hi")), _assistant()])

    def test_returns_last_message(self):
        last = _user(TextPart(text="second"))
        assert validate_messages([_user(TextPart(text="first")), last]) is last


class TestFindDecisions:
    def test_no_assistant_message(self):
        assert find_decisions_to_process(_user(), None) == []

    def test_pairs_requests_with_decisions(self):
        assistant = _assistant(
            ApprovalRequestPart(tool=_tool("t1")),
            ApprovalRequestPart(tool=_tool("t2")),
        )
        user = _user(
            ApprovalDecisionPart(tool_id="t2", decision=RejectDecision(reason="no")),
            ApprovalDecisionPart(tool_id="t1", decision=ApproveDecision()),
        )

        decisions = find_decisions_to_process(user, assistant)

        assert [d.tool.id for d in decisions] == ["t1", "t2"]
        assert isinstance(decisions[0].decision, ApproveDecision)
        assert decisions[1].decision.reason == "no"

    def test_missing_decision_raises(self):
        assistant = _assistant(ApprovalRequestPart(tool=_tool("t1")))
        with pytest.raises(HITLError, match="No decision found for tool t1"):
            find_decisions_to_process(_user(TextPart(text="ok")), assistant)

    def test_decisions_without_requests_ignored(self):
        user = _user(ApprovalDecisionPart(tool_id="x", decision=ApproveDecision()))
        assert find_decisions_to_process(user, _assistant(TextPart(text="hi"))) == []


# ---------------------------------------------------------------------------
# Test: Executing decisions
# ---------------------------------------------------------------------------


class TestExecuteDecisions:
    def test_approve_sends_and_records(self):
        service = EmailService()
        messages = [_user()]

        end_parts = _run(execute_decisions(
            [DecisionToProcess(tool=_tool(), decision=ApproveDecision())],
            messages,
            service,
        ))

        sent = _run(service.sent_emails())
        assert [(e.to, e.subject) for e in sent] == [("bob@example.com", "Lunch")]
        assert end_parts[0].output.message == "Email sent"
        assert messages[-1].parts == end_parts

    def test_reject_does_not_send(self):
        service = EmailService()
        end_parts = _run(execute_decisions(
            [DecisionToProcess(tool=_tool(), decision=RejectDecision(reason="wrong day"))],
            [_user()],
            service,
        ))
        assert _run(service.sent_emails()) == []
        assert end_parts[0].output.message == "Email not sent: wrong day"


# ---------------------------------------------------------------------------
# Test: Diary
# ---------------------------------------------------------------------------


class TestGetDiary:
    def test_renders_every_part_type(self):
        diary = get_diary([
            _user(TextPart(text="Email Bob about lunch")),
            _assistant(ApprovalRequestPart(tool=_tool())),
            _user(
                ApprovalDecisionPart(tool_id="t1", decision=ApproveDecision()),
                ApprovalEndPart(tool_id="t1", output=ToolOutput(message="Email sent")),
            ),
        ])

        assert diary == (
            "## User Message\n\nEmail Bob about lunch\n\n"
            "## Assistant Message\n\n"
            "The assistant requested to send an email:\n"
            "To: bob@example.com\nSubject: Lunch\nContent: Friday at 1?\n\n"
            "## User Message\n\n"
            "The user approved the tool.\n\n"
            "The tool was performed: Email sent"
        )

    def test_rejection_reason_rendered(self):
        diary = get_diary([_user(
            ApprovalDecisionPart(tool_id="t1", decision=RejectDecision(reason="too rude")),
        )])
        assert "The user rejected the tool: too rude" in diary


# ---------------------------------------------------------------------------
# Test: Full turns
# ---------------------------------------------------------------------------


class TestRunHITLTurn:
    def test_send_request_becomes_approval_part(self, fake_llm):
        llm = fake_llm(replies=[
            '{"tool": "sendEmail", "input": {"to": "bob@example.com", '
            '"subject": "Lunch", "content": "Friday at 1?"}}',
        ])
        service = EmailService()

        result = _run(run_hitl_turn(
            llm, [_user(TextPart(text="Ask Bob to lunch"))], service,
        ))

        assert len(llm.calls) == 1
        assert len(result.parts) == 1
        request = result.parts[0]
        assert isinstance(request, ApprovalRequestPart)
        assert request.tool.to == "bob@example.com"
        assert result.end_parts == []
        # Nothing is sent until the user approves
        assert _run(service.sent_emails()) == []

    def test_approval_sends_then_assistant_replies(self, fake_llm):
        llm = fake_llm(replies=['{"answer": "Done, I emailed Bob."}'])
        service = EmailService()
        messages = [
            _user(TextPart(text="Ask Bob to lunch")),
            _assistant(ApprovalRequestPart(tool=_tool("t1"))),
            _user(ApprovalDecisionPart(tool_id="t1", decision=ApproveDecision())),
        ]

        result = _run(run_hitl_turn(llm, messages, service))

        assert [p.output.message for p in result.end_parts] == ["Email sent"]
        assert result.parts == [TextPart(text="Done, I emailed Bob.")]
        assert len(_run(service.sent_emails())) == 1
        # The model sees the outcome in the diary
        prompt = llm.calls[0]["messages"][0]["content"]
        assert "The tool was performed: Email sent" in prompt
        assert 'The user\'s name is "John Doe"' in llm.calls[0]["system"]

    def test_missing_decision_raises_before_llm_call(self, fake_llm):
        llm = fake_llm()
        messages = [
            _assistant(ApprovalRequestPart(tool=_tool("t1"))),
            _user(TextPart(text="hmm")),
        ]
        with pytest.raises(HITLError):
            _run(run_hitl_turn(llm, messages, EmailService()))
        assert llm.calls == []

    def test_parts_parse_from_json(self):
        message = ChatMessage.model_validate({
            "role": "user",
            "parts": [
                {"type": "text", "text": "hi"},
                {"type": "approval-decision", "tool_id": "t1",
                 "decision": {"type": "reject", "reason": "no"}},
            ],
        })
        assert isinstance(message.parts[1].decision, RejectDecision)
