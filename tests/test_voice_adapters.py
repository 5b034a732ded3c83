import pytest

from convoflow.conversations import CallAnalyzed, CallEnded, CallStarted
from convoflow.voice import BolnaAdapter, RetellAdapter, SignatureError, get_adapter
from convoflow.voice.base import hmac_sha256_hex, optional_int


def test_registry_lookup_is_case_insensitive():
    assert get_adapter("Retell") is RetellAdapter
    assert get_adapter("bolna") is BolnaAdapter
    with pytest.raises(KeyError):
        get_adapter("vapi")


def test_retell_started_event():
    event = RetellAdapter().parse_event(
        {
            "event": "call_started",
            "call": {
                "call_id": "c1",
                "agent_id": "ra_1",
                "from_number": "+15551230000",
                "to_number": "+15550002222",
            },
        }
    )

    assert event == CallStarted(
        call_id="c1",
        provider="retell",
        provider_agent_id="ra_1",
        from_number="+15551230000",
        to_number="+15550002222",
    )


def test_retell_duration_is_converted_from_milliseconds():
    event = RetellAdapter().parse_event(
        {"event": "call_ended", "call": {"call_id": "c1", "duration_ms": 65400}}
    )

    assert isinstance(event, CallEnded)
    assert event.duration == 65


def test_retell_analyzed_event_carries_recording_and_transcript():
    event = RetellAdapter().parse_event(
        {
            "event": "call_analyzed",
            "call": {
                "call_id": "c1",
                "duration_ms": 0,
                "recording_url": "https://cdn.example.com/r.wav",
                "transcript": "Agent: Hi",
            },
        }
    )

    assert isinstance(event, CallAnalyzed)
    assert event.duration is None
    assert event.recording_url == "https://cdn.example.com/r.wav"
    assert event.transcript == "Agent: Hi"


@pytest.mark.parametrize(
    "payload",
    [
        {"event": "call_started"},
        {"event": "call_started", "call": {"agent_id": "ra_1"}},
        {"event": "transcript_updated", "call": {"call_id": "c1"}},
    ],
)
def test_retell_unusable_payloads_return_none(payload):
    assert RetellAdapter().parse_event(payload) is None


def test_bolna_reads_nested_data():
    event = BolnaAdapter().parse_event(
        {
            "event": "call_initiated",
            "data": {"conversation_id": "b1", "user_number": "+1555", "agent_number": "+1666"},
        }
    )

    assert event == CallStarted(
        call_id="b1", provider="bolna", from_number="+1555", to_number="+1666"
    )


def test_bolna_reads_top_level_fields():
    event = BolnaAdapter().parse_event(
        {"event": "call_ended", "call_id": "b2", "duration": "42.6"}
    )

    assert isinstance(event, CallEnded)
    assert event.duration == 43


def test_optional_int_rejects_junk():
    assert optional_int("abc") is None
    assert optional_int(True) is None
    assert optional_int(float("nan")) is None
    assert optional_int(0) is None
    assert optional_int("12") == 12


def test_authenticate_checks_raw_body_signature():
    adapter = RetellAdapter("secret")
    body = b'{"event": "call_started"}'

    adapter.authenticate(body, hmac_sha256_hex("secret", body))

    with pytest.raises(SignatureError, match="Missing signature"):
        adapter.authenticate(body, None)
    with pytest.raises(SignatureError, match="Invalid signature"):
        adapter.authenticate(body, hmac_sha256_hex("other", body))
    with pytest.raises(SignatureError):
        adapter.authenticate(body + b" ", hmac_sha256_hex("secret", body))


def test_verify_without_secret_is_false():
    assert BolnaAdapter().verify_signature(b"{}", "anything") is False
