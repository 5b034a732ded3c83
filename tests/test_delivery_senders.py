import requests
from conftest import FakeHTTP, FakeResponse

from convoflow.delivery import ResendEmailSender, TwilioSMSSender
from convoflow.delivery.email import RESEND_API_URL


def test_twilio_posts_form_with_basic_auth():
    http = FakeHTTP([FakeResponse(201, payload={"sid": "SM42"})])
    sender = TwilioSMSSender("AC1", "token", "+15550000000", session=http)

    result = sender.send_sms("+15551111111", "Hello")

    assert result.success is True
    assert result.message_id == "SM42"
    call = http.calls[0]
    assert call["url"].endswith("/Accounts/AC1/Messages.json")
    assert call["data"] == {"To": "+15551111111", "From": "+15550000000", "Body": "Hello"}
    assert call["auth"] == ("AC1", "token")


def test_twilio_explicit_sender_wins():
    http = FakeHTTP([FakeResponse(201, payload={"sid": "SM1"})])

    TwilioSMSSender("AC1", "token", "+1000", session=http).send_sms("+1", "x", from_="+1999")

    assert http.calls[0]["data"]["From"] == "+1999"


def test_twilio_without_credentials_does_not_call_out():
    http = FakeHTTP()

    result = TwilioSMSSender(None, None, "+1000", session=http).send_sms("+1", "x")

    assert result.success is False
    assert result.error == "Twilio credentials not configured"
    assert http.calls == []


def test_twilio_error_message_from_response():
    http = FakeHTTP(
        [FakeResponse(400, payload={"message": "Invalid 'To' number"}), FakeResponse(500)]
    )
    sender = TwilioSMSSender("AC1", "token", "+1000", session=http)

    assert sender.send_sms("+1", "x").error == "Invalid 'To' number"
    assert sender.send_sms("+1", "x").error == "Twilio error: 500"


def test_twilio_transport_error_is_a_failed_result():
    http = FakeHTTP([requests.ConnectionError("connection refused")])

    result = TwilioSMSSender("AC1", "token", "+1000", session=http).send_sms("+1", "x")

    assert result.success is False
    assert result.error == "connection refused"


def test_resend_builds_sender_and_html_body():
    http = FakeHTTP([FakeResponse(200, payload={"id": "em_9"})])
    sender = ResendEmailSender("re_key", "noreply@example.com", session=http)

    result = sender.send_email("ana@example.com", "Hi", "Line one\nLine two", from_name="Front Desk")

    assert result.message_id == "em_9"
    call = http.calls[0]
    assert call["url"] == RESEND_API_URL
    assert call["headers"] == {"Authorization": "Bearer re_key"}
    assert call["json"] == {
        "from": "Front Desk <noreply@example.com>",
        "to": ["ana@example.com"],
        "subject": "Hi",
        "html": "Line one<br>Line two",
    }


def test_resend_without_key_fails():
    result = ResendEmailSender(None, session=FakeHTTP()).send_email("a@b.c", "s", "b")

    assert result.success is False
    assert result.error == "Resend API key not configured"
