import uuid
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import stampbot.models  # noqa: F401
from stampbot.config import Settings, get_settings
from stampbot.database import Base
from stampbot.schemas.webhook import InboundEvent, MediaInfo
from stampbot.services.actions import SendButtons, SendImage, SendList, SendText
from stampbot.services.dispatcher import Dispatcher, build_flow_services
from stampbot.services.record_store import SqlRecordStore
from stampbot.services.result import Result

CUSTOMER = "27820000001"


class RecordingGateway:
    """Messaging gateway double that records what would have been sent."""

    def __init__(self):
        self.sent = []
        self.media = {}

    def send(self, to, action):
        self.sent.append((to, action))
        return Result.success(f"wamid.{len(self.sent)}")

    def execute(self, to, actions):
        return [self.send(to, action) for action in actions]

    def download_media(self, media_id):
        if media_id not in self.media:
            return Result.failure("media lookup returned 404", "media_lookup_failed")
        return Result.success(self.media[media_id])

    @property
    def actions(self):
        return [action for _, action in self.sent]

    def texts(self) -> list[str]:
        bodies = []
        for action in self.actions:
            if isinstance(action, (SendText, SendButtons, SendList)):
                bodies.append(action.body)
        return bodies

    def images(self) -> list[str]:
        return [action.link for action in self.actions if isinstance(action, SendImage)]

    def reset(self):
        self.sent.clear()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep alerts and the Supabase backend off regardless of the host environment."""
    for name in ("ALERT_BOT_TOKEN", "ALERT_CHAT_ID", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        card_base_url="https://cards.test",
        dashboard_url="https://dash.test/demo",
        calendly_url="https://calendly.test/demo",
        verify_token="verify-me",
        admin_token="admin-secret",
        media_storage_dir=str(tmp_path / "media"),
        public_base_url="http://testserver",
        openai_api_key=None,
        supabase_url=None,
        alert_bot_token=None,
        alert_chat_id=None,
    )


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine, settings):
    session = sessionmaker(bind=engine, autoflush=False)()
    store = SqlRecordStore(session, media_dir=settings.media_storage_dir, public_base_url=settings.public_base_url)
    yield store
    store.close()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def services(settings, store, gateway):
    return build_flow_services(settings, store, gateway)


@pytest.fixture
def dispatcher(services):
    return Dispatcher(services)


def make_event(
    text: Optional[str] = None,
    *,
    sender: str = CUSTOMER,
    reply_id: Optional[str] = None,
    media: Optional[MediaInfo] = None,
    message_id: Optional[str] = None,
    sender_name: Optional[str] = "Thandi",
) -> InboundEvent:
    if media is not None:
        kind = media.kind
    elif reply_id is not None:
        kind = "interactive"
    else:
        kind = "text"
    return InboundEvent(
        message_id=message_id or f"wamid.{uuid.uuid4().hex}",
        sender=sender,
        sender_name=sender_name,
        kind=kind,
        text=text,
        reply_id=reply_id,
        media=media,
    )


@pytest.fixture
def send(dispatcher, gateway):
    """Dispatch one event and return only what it sent."""

    def _send(text: Optional[str] = None, **kwargs):
        gateway.reset()
        outcome = dispatcher.process(make_event(text, **kwargs))
        return outcome

    return _send


@pytest.fixture
def client(monkeypatch, settings, store, gateway):
    """TestClient wired to the fixture store and gateway; routers read settings from the environment."""
    from fastapi.testclient import TestClient

    from stampbot.main import app
    from stampbot.services.record_store import get_record_store, get_record_store_factory
    from stampbot.services.whatsapp_service import get_whatsapp_service

    monkeypatch.setenv("VERIFY_TOKEN", settings.verify_token)
    monkeypatch.setenv("ADMIN_TOKEN", settings.admin_token)
    monkeypatch.setenv("CARD_BASE_URL", settings.card_base_url)
    monkeypatch.setenv("CALENDLY_URL", settings.calendly_url)
    monkeypatch.setenv("MEDIA_STORAGE_DIR", settings.media_storage_dir)
    monkeypatch.setenv("PUBLIC_BASE_URL", settings.public_base_url)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()

    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_record_store_factory] = lambda: (lambda: store)
    app.dependency_overrides[get_whatsapp_service] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
