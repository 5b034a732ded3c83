import pathlib
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest
from fastapi import FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from convoflow.app_logging import init_logging
from convoflow.core.background import InlineDispatcher
from convoflow.core.config import Settings, reset_settings_cache
from convoflow.delivery import DeliveryResult
from convoflow.models import Agent, Base, Conversation, FollowupConfig, Message
from convoflow.models.session import get_engine, get_sessionmaker
from convoflow.processing import AnalysisPayload
from convoflow.runtime import build_runtime


@dataclass
class FakeSMSSender:
    result: DeliveryResult = field(
        default_factory=lambda: DeliveryResult(True, message_id="SM123")
    )
    calls: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def send_sms(self, to: str, body: str, from_: str | None = None) -> DeliveryResult:
        with self._lock:
            self.calls.append({"to": to, "body": body, "from_": from_})
        return self.result


@dataclass
class FakeEmailSender:
    result: DeliveryResult = field(
        default_factory=lambda: DeliveryResult(True, message_id="em_123")
    )
    calls: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_name: str | None = None,
        from_email: str | None = None,
    ) -> DeliveryResult:
        with self._lock:
            self.calls.append(
                {
                    "to": to,
                    "subject": subject,
                    "body": body,
                    "from_name": from_name,
                    "from_email": from_email,
                }
            )
        return self.result


def make_analysis(**overrides: Any) -> AnalysisPayload:
    data = {
        "sentiment": "positive",
        "sentiment_score": 0.8,
        "topics": ["appointment booking"],
        "summary": "Customer booked a cleaning.",
        "resolution_status": "resolved",
        "knowledge_gaps": [],
        "key_phrases": ["cleaning"],
        "customer_intent": "book appointment",
        "confidence_avg": 0.9,
    }
    data.update(overrides)
    return AnalysisPayload.model_validate(data)


class FakeAnalyzer:
    def __init__(self, payload: AnalysisPayload | None = None):
        self.payload = payload or make_analysis()
        self.calls: list[list[tuple[str, str]]] = []
        self.fail_with: Exception | None = None

    def analyze(self, turns):
        self.calls.append(list(turns))
        if self.fail_with is not None:
            raise self.fail_with
        return self.payload


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "ok", payload: Any = None):
        self.status_code = status_code
        self.text = text
        self._payload = payload
        self.ok = 200 <= status_code < 300

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHTTP:
    """Stand-in for ``requests.Session`` recording every POST."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        outcome = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    for name in ("APP_ENV", "ENVIRONMENT", "INTERNAL_API_SECRET", "TWILIO_AUTH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def engine(tmp_path: pathlib.Path):
    db_path = tmp_path / "convoflow.db"
    engine = get_engine(f"sqlite+pysqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return get_sessionmaker(engine=engine)


@pytest.fixture
def make_agent(session_factory) -> Callable[..., Agent]:
    def _make(**values: Any) -> Agent:
        values.setdefault("name", "Bright Smiles Dental")
        values.setdefault("vertical", "dental")
        with session_factory.begin() as session:
            agent = Agent(**values)
            session.add(agent)
        return agent

    return _make


@pytest.fixture
def make_conversation(session_factory) -> Callable[..., Conversation]:
    def _make(agent: Agent, messages: list[tuple[str, str]] | None = None, **values: Any):
        values.setdefault("channel", "chat")
        values.setdefault("status", "completed")
        with session_factory.begin() as session:
            conversation = Conversation(agent_id=agent.id, **values)
            session.add(conversation)
            session.flush()
            for role, content in messages or []:
                session.add(Message(conversation_id=conversation.id, role=role, content=content))
                session.flush()
        return conversation

    return _make


@pytest.fixture
def make_followup_config(session_factory) -> Callable[..., FollowupConfig]:
    def _make(agent: Agent, **values: Any) -> FollowupConfig:
        values.setdefault("channel", "sms")
        values.setdefault("template_body", "Hi {{customer_name}}, thanks for contacting {{business_name}}!")
        with session_factory.begin() as session:
            config = FollowupConfig(agent_id=agent.id, **values)
            session.add(config)
        return config

    return _make


@pytest.fixture
def sms_sender() -> FakeSMSSender:
    return FakeSMSSender()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def http() -> FakeHTTP:
    return FakeHTTP()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        public_app_url="https://app.example.com",
        retell_webhook_secret="retell-secret",
        bolna_webhook_secret="bolna-secret",
        twilio_auth_token="twilio-token",
        internal_api_secret="internal-secret",
    )


@pytest.fixture
def runtime(settings, session_factory, sms_sender, email_sender, analyzer, http):
    rt = build_runtime(
        settings,
        session_factory=session_factory,
        dispatcher=InlineDispatcher(),
        http=http,
        sms_sender=sms_sender,
        email_sender=email_sender,
        analyzer=analyzer,
    )
    yield rt
    rt.close()


@pytest.fixture
def client(runtime, monkeypatch, tmp_path):
    from fastapi.testclient import TestClient

    from convoflow.main import create_app

    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    app = create_app(lambda: runtime)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


