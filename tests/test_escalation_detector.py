import pytest

from convoflow.escalation import build_escalation_note, evaluate
from convoflow.escalation.notifier import AgentContact


@pytest.mark.parametrize(
    "message, vertical, reason",
    [
        ("I want to speak to a manager right now", "dental", "Requested human agent"),
        ("I'm in severe pain and swelling", "dental", "Dental emergency"),
        ("There is a GAS LEAK in my kitchen", "home_services", "Home emergency"),
        ("This is an emergency", None, "Emergency mentioned"),
        ("I will contact my lawyer", "restaurant", "Legal threat"),
        ("There's an unauthorized charge on my card", "ecommerce", "Fraud/security issue"),
    ],
)
def test_evaluate_matches_triggers(message, vertical, reason):
    result = evaluate(message, vertical)

    assert result.escalate is True
    assert result.reason == reason


def test_universal_triggers_win_over_vertical_ones():
    result = evaluate("Emergency! severe pain", "dental")

    assert result.reason == "Emergency mentioned"


def test_vertical_trigger_ignored_for_other_verticals():
    assert evaluate("I have severe pain", "legal").escalate is False
    assert evaluate("I have severe pain", None).escalate is False


def test_plain_question_does_not_escalate():
    result = evaluate("What are your hours?", "dental")

    assert result.escalate is False
    assert result.reason is None


def test_escalation_note_lists_contacts_for_chat():
    agent = AgentContact(
        id="a1", name="Bright Smiles", escalation_email="desk@example.com", escalation_phone="+1555"
    )

    note = build_escalation_note(agent, "Dental emergency")

    assert "## Escalation Required" in note
    assert "email: desk@example.com or phone: +1555" in note


def test_escalation_note_for_voice_without_contacts():
    agent = AgentContact(id="a1", name="Bright Smiles")

    note = build_escalation_note(agent, "Requested human agent", channel="voice")

    assert note.startswith("\n\nESCALATION:")
    assert "team member will follow up" in note
