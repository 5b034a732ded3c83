from conftest import FakeEmailSender, FakeSMSSender

from convoflow.delivery import DeliveryResult
from convoflow.escalation import AgentContact, EscalationNotifier


def _agent(**values):
    values.setdefault("id", "agent-1")
    values.setdefault("name", "Bright Smiles")
    return AgentContact(**values)


def test_notify_sends_email_and_sms():
    sms, email = FakeSMSSender(), FakeEmailSender()
    notifier = EscalationNotifier(sms, email, app_url="https://app.example.com/")

    notifier.notify(
        _agent(escalation_email="desk@example.com", escalation_phone="+15550001111"),
        "conv-1",
        "Dental emergency",
        "sms",
    )

    assert len(email.calls) == 1
    assert email.calls[0]["to"] == "desk@example.com"
    assert "Dental emergency" in email.calls[0]["subject"]
    assert "https://app.example.com/conversations?id=conv-1" in email.calls[0]["body"]
    assert len(sms.calls) == 1
    assert sms.calls[0]["to"] == "+15550001111"
    assert "https://app.example.com/conversations?id=conv-1" in sms.calls[0]["body"]


def test_notify_without_contacts_sends_nothing():
    sms, email = FakeSMSSender(), FakeEmailSender()

    EscalationNotifier(sms, email).notify(_agent(), "conv-1", "Legal threat", "chat")

    assert sms.calls == []
    assert email.calls == []


def test_failure_in_one_channel_does_not_block_the_other(caplog):
    class ExplodingEmail:
        def send_email(self, *args, **kwargs):
            raise RuntimeError("smtp down")

    sms = FakeSMSSender()
    notifier = EscalationNotifier(sms, ExplodingEmail())

    notifier.notify(
        _agent(escalation_email="desk@example.com", escalation_phone="+15550001111"),
        "conv-1",
        "Complaint filed",
        "chat",
    )

    assert len(sms.calls) == 1
    assert "Escalation email notification raised" in caplog.text


def test_unsuccessful_result_is_logged(caplog):
    sms = FakeSMSSender(result=DeliveryResult(False, error="Invalid number"))

    EscalationNotifier(sms, FakeEmailSender()).notify(
        _agent(escalation_phone="+1"), "conv-1", "Emergency mentioned", "voice"
    )

    assert len(sms.calls) == 1
    assert "Invalid number" in caplog.text
