from datetime import date

import pytest

import app as app_module
import config

TODAY = date(2024, 3, 15)
OWNER = {"X-Owner-Id": "alice"}

real_resolve_today = app_module.resolve_today


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client on a temp data file, with AI off and today pinned."""
    monkeypatch.setattr(config, "GROQ_API_KEY", None)
    monkeypatch.setattr(app_module, "resolve_today", lambda: TODAY)
    monkeypatch.setattr(app_module, "infer_mood", lambda text: 3)

    flask_app = app_module.app
    flask_app.config.update(TESTING=True, DATA_FILE=str(tmp_path / "journal.json"))

    with flask_app.test_client() as test_client:
        yield test_client


@pytest.fixture
def ai_reply(monkeypatch):
    """Make every AI call answer with a fixed reply."""
    def install(reply):
        monkeypatch.setattr("ai_client.generate_text", lambda *args, **kwargs: reply)
    return install
