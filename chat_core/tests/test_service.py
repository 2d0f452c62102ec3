import json

from chat_core.api.service import close_session, open_session
from chat_core.config.credentials import CredentialStore
from chat_core.infrastructure.storage.json_store import JsonPersistenceGateway
from chat_core.providers.glm_client import MISSING_KEY_NOTICE, GlmClient


class ReplyClient:
    name = "fake"

    def open(self, context):
        yield "pong"


def test_open_send_close_then_reopen(tmp_path):
    gw = JsonPersistenceGateway(root=tmp_path)
    session = open_session("c-42", client=ReplyClient(), gateway=gw)
    assert session.store.title == "Untitled"
    session.set_draft("ping")
    session.send()
    assert close_session(session, gateway=gw) is True

    reopened = open_session("c-42", client=ReplyClient(), gateway=gw)
    assert [(m.role, m.content) for m in reopened.store.messages()] == [("user", "ping"), ("assistant", "pong")]


def test_unused_session_is_not_persisted(tmp_path):
    gw = JsonPersistenceGateway(root=tmp_path)
    session = open_session(client=ReplyClient(), gateway=gw)
    assert close_session(session, gateway=gw) is False
    assert not (tmp_path / "saves").exists()


def test_first_run_without_key_degrades(tmp_path):
    gw = JsonPersistenceGateway(root=tmp_path)
    credentials = CredentialStore.load(gw)
    assert json.loads((tmp_path / "settings.json").read_text(encoding="utf-8")) == {}

    session = open_session(client=GlmClient(credentials), gateway=gw)
    session.set_draft("hello")
    session.send()
    assert session.store.message(1).content == MISSING_KEY_NOTICE
