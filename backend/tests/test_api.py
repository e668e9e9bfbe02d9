"""End-to-end tests of the HTTP API with a fake provider."""

import json
import threading
import time

import pytest
from fastapi.testclient import TestClient

from fakes import FakeProvider
from i18n_compare import main
from i18n_compare.schemas import Settings


EN = {"nav": {"home": "Home", "about": "About"}, "footer": {"copy": "All rights reserved"}}
FR = {"nav": {"home": "Accueil"}}


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(monkeypatch, provider):
    settings = Settings(max_batch_translations=2, openai_compat={"api_key": "sk-live"}).normalized()
    monkeypatch.setattr(main, "EFFECTIVE_SETTINGS", settings)
    monkeypatch.setattr(main, "_provider_from_settings", lambda s: provider)
    monkeypatch.setattr(main, "save_settings", lambda s: None)
    with TestClient(main.app) as c:
        yield c


def upload(client, *files):
    parts = [("source", (files[0][0], json.dumps(files[0][1]), "application/json"))]
    for name, content in files[1:]:
        parts.append(("targets", (name, json.dumps(content), "application/json")))
    return client.post("/workspaces", files=parts)


def wait_for_run(client, workspace_id, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/workspaces/{workspace_id}/auto-translate").json()
        if not body["active"]:
            return body["run"]
        time.sleep(0.02)
    raise AssertionError("run did not finish")


# =============================================================================
# Settings & languages
# =============================================================================


class TestSettings:
    def test_get_redacts_key(self, client):
        body = client.get("/settings").json()
        assert body["defaults"]["openai_compat"]["api_key"] == "******"
        assert body["defaults"]["max_batch_translations"] == 2

    def test_post_keeps_redacted_key(self, client):
        payload = client.get("/settings").json()["defaults"]
        payload["max_batch_translations"] = 5
        r = client.post("/settings", json=payload)
        assert r.status_code == 200
        assert main.EFFECTIVE_SETTINGS.max_batch_translations == 5
        assert main.EFFECTIVE_SETTINGS.openai_compat["api_key"] == "sk-live"

    def test_languages(self, client):
        assert client.get("/languages").json()["languages"]["fr"] == "French"


# =============================================================================
# Translate service endpoints
# =============================================================================


class TestTranslateEndpoints:
    def test_translate_batch(self, client, provider):
        r = client.post(
            "/api/translate-batch",
            json={
                "items": [{"key": "a", "text": "Hello"}, {"key": "b", "text": "Bye"}],
                "sourceLanguage": "en",
                "targetLanguage": "French",
            },
        )
        assert r.status_code == 200
        assert r.json() == [
            {"key": "a", "translatedText": '"French:Hello"'},
            {"key": "b", "translatedText": '"French:Bye"'},
        ]
        assert provider.calls[0][1:] == ("English", "French")

    def test_translate_batch_too_large(self, client):
        items = [{"key": f"k{i}", "text": "x"} for i in range(3)]
        r = client.post(
            "/api/translate-batch",
            json={"items": items, "sourceLanguage": "en", "targetLanguage": "fr"},
        )
        assert r.status_code == 400
        assert "maximum limit of 2" in r.json()["detail"]

    def test_translate_batch_missing_fields(self, client):
        r = client.post("/api/translate-batch", json={"items": [{"key": "a", "text": "x"}]})
        assert r.status_code == 422

    def test_translate_batch_provider_failure(self, client, provider):
        provider.fail_when = lambda items: True
        r = client.post(
            "/api/translate-batch",
            json={"items": [{"key": "a", "text": "x"}], "sourceLanguage": "en", "targetLanguage": "fr"},
        )
        assert r.status_code == 500

    def test_translate_single(self, client):
        r = client.post("/api/translate", json={"text": "Hi", "sourceLanguage": "en", "targetLanguage": "de"})
        assert r.status_code == 200
        assert r.text == "German:Hi"


# =============================================================================
# Workspaces
# =============================================================================


class TestWorkspaces:
    def test_upload_and_compare(self, client):
        r = upload(client, ("en.json", EN), ("fr.json", FR), ("es.json", {}))
        assert r.status_code == 200
        body = r.json()
        assert body["source_language"] == "en"
        assert body["languages"] == ["en", "fr", "es"]
        assert [row["key"] for row in body["rows"]] == ["nav.home", "nav.about", "footer.copy"]
        # fr: about, copy; es: all three
        assert body["missing"] == 5
        assert body["run"]["status"] == "idle"

    def test_upload_rejects_bad_json(self, client):
        r = client.post("/workspaces", files=[("source", ("en.json", "{oops", "application/json"))])
        assert r.status_code == 400
        assert "en.json" in r.json()["detail"]

    def test_upload_rejects_non_json_file(self, client):
        r = client.post("/workspaces", files=[("source", ("en.po", "msgid", "text/plain"))])
        assert r.status_code == 400

    def test_edit_delete_export(self, client):
        ws = upload(client, ("en.json", EN), ("fr.json", FR)).json()

        r = client.post(f"/workspaces/{ws['id']}/entries", json={"key": "nav.about", "language": "fr", "value": "À propos"})
        assert r.json()["missing"] == 1

        r = client.post(f"/workspaces/{ws['id']}/entries", json={"key": "nope", "language": "fr", "value": "x"})
        assert r.status_code == 404

        r = client.post(f"/workspaces/{ws['id']}/entries/delete", json={"keys": ["footer.copy"]})
        assert r.json() == {"ok": True, "deleted": 1, "missing": 0}

        r = client.get(f"/workspaces/{ws['id']}/export/fr")
        assert r.status_code == 200
        assert r.headers["content-disposition"] == 'attachment; filename="fr.json"'
        assert r.json() == {"nav": {"home": "Accueil", "about": "À propos"}}

        assert client.get(f"/workspaces/{ws['id']}/export/de").status_code == 404

    def test_hide_completed(self, client):
        ws = upload(client, ("en.json", EN), ("fr.json", FR)).json()
        rows = client.get(f"/workspaces/{ws['id']}", params={"hide_completed": True}).json()["rows"]
        assert [row["key"] for row in rows] == ["nav.about", "footer.copy"]

    def test_unknown_workspace(self, client):
        assert client.get("/workspaces/missing").status_code == 404
        assert client.post("/workspaces/missing/auto-translate/pause").status_code == 404

    def test_delete_workspace(self, client):
        ws = upload(client, ("en.json", EN)).json()
        assert client.delete(f"/workspaces/{ws['id']}").json() == {"ok": True}
        assert client.get(f"/workspaces/{ws['id']}").status_code == 404


# =============================================================================
# Auto-translate runs
# =============================================================================


class TestAutoTranslate:
    def test_run_fills_missing_and_exports(self, client, provider):
        ws = upload(client, ("en.json", EN), ("fr.json", FR), ("es.json", {})).json()

        r = client.post(f"/workspaces/{ws['id']}/auto-translate", json={})
        assert r.status_code == 202

        run = wait_for_run(client, ws["id"])
        assert run["status"] == "idle"
        # every key is missing in es, so all three go to both languages
        assert run["total_count"] == 6
        assert run["translated_count"] == 6
        # batches never exceed the configured ceiling
        assert max(len(keys) for keys, _, _ in provider.calls) == 2

        exported = client.get(f"/workspaces/{ws['id']}/export/es").json()
        assert exported["nav"]["about"] == "Spanish:About"
        body = client.get(f"/workspaces/{ws['id']}").json()
        assert body["missing"] == 0

    def test_run_with_selection(self, client):
        ws = upload(client, ("en.json", EN), ("fr.json", FR)).json()

        client.post(
            f"/workspaces/{ws['id']}/auto-translate",
            json={"targetLanguages": ["fr"], "keys": ["footer.copy"]},
        )
        run = wait_for_run(client, ws["id"])

        assert run["translated_count"] == 1
        exported = client.get(f"/workspaces/{ws['id']}/export/fr").json()
        assert exported["footer"]["copy"] == "French:All rights reserved"
        assert exported["nav"]["about"] == ""

    def test_bad_target_language(self, client):
        ws = upload(client, ("en.json", EN), ("fr.json", FR)).json()
        r = client.post(f"/workspaces/{ws['id']}/auto-translate", json={"targetLanguages": ["en"]})
        assert r.status_code == 400

    def test_conflict_then_stop(self, client, provider):
        provider.delay = 0.3
        ws = upload(client, ("en.json", EN), ("fr.json", {})).json()

        assert client.post(f"/workspaces/{ws['id']}/auto-translate", json={}).status_code == 202
        r = client.post(f"/workspaces/{ws['id']}/auto-translate", json={})
        assert r.status_code == 409

        r = client.post(f"/workspaces/{ws['id']}/auto-translate/stop")
        assert r.json()["run"]["status"] == "stopped"

        run = wait_for_run(client, ws["id"])
        assert run["status"] == "stopped"
        assert run["translated_count"] < run["total_count"]

    def test_pause_and_resume(self, client, provider):
        provider.delay = 0.1
        ws = upload(client, ("en.json", EN), ("fr.json", {})).json()
        client.post(f"/workspaces/{ws['id']}/auto-translate", json={})

        r = client.post(f"/workspaces/{ws['id']}/auto-translate/pause")
        assert r.json()["run"]["status"] == "paused"

        time.sleep(0.3)
        paused = client.get(f"/workspaces/{ws['id']}/auto-translate").json()
        assert paused["active"] is True
        assert paused["run"]["status"] == "paused"
        calls_while_paused = len(provider.calls)
        time.sleep(0.2)
        assert len(provider.calls) == calls_while_paused

        r = client.post(f"/workspaces/{ws['id']}/auto-translate/resume")
        assert r.json()["run"]["status"] == "running"
        run = wait_for_run(client, ws["id"])
        assert run["status"] == "idle"
        assert run["translated_count"] == 3

    def test_failed_run_reports_error(self, client, provider):
        provider.fail_when = lambda items: True
        ws = upload(client, ("en.json", EN), ("fr.json", {})).json()

        client.post(f"/workspaces/{ws['id']}/auto-translate", json={"targetLanguages": ["fr"]})
        run = wait_for_run(client, ws["id"])

        assert run["status"] == "error"
        assert run["error"] == "Translation failed for key: footer.copy"
        assert [f["key"] for f in run["failed_keys"]] == ["nav.home", "nav.about", "footer.copy"]

    def test_delete_workspace_stops_paused_run(self, client, provider):
        provider.delay = 0.2
        ws = upload(client, ("en.json", EN), ("fr.json", {})).json()
        client.post(f"/workspaces/{ws['id']}/auto-translate", json={})
        client.post(f"/workspaces/{ws['id']}/auto-translate/pause")
        workspace = main.WORKSPACES.get(ws["id"])

        assert client.delete(f"/workspaces/{ws['id']}").json() == {"ok": True}

        deadline = time.monotonic() + 3
        while workspace.run_active and time.monotonic() < deadline:
            time.sleep(0.02)
        assert not workspace.run_active
        assert workspace.run_state.status == "stopped"
        assert workspace.run_state.translated_count < workspace.run_state.total_count

    def test_events_stream_live_run(self, client, provider, monkeypatch):
        monkeypatch.setattr(main, "HEARTBEAT_SECONDS", 0.05)
        provider.delay = 0.05
        ws = upload(client, ("en.json", EN), ("fr.json", {})).json()
        client.post(f"/workspaces/{ws['id']}/auto-translate", json={})
        client.post(f"/workspaces/{ws['id']}/auto-translate/pause")

        def resume_later():
            time.sleep(0.4)
            client.post(f"/workspaces/{ws['id']}/auto-translate/resume")

        resumer = threading.Thread(target=resume_later)
        resumer.start()
        # the stream only ends once the run is over
        r = client.get(f"/workspaces/{ws['id']}/auto-translate/events")
        resumer.join()

        lines = [json.loads(line) for line in r.text.splitlines() if line.strip()]
        assert lines[0]["type"] == "state"
        assert lines[0]["status"] == "paused"
        assert {"type": "heartbeat"} in lines
        states = [line for line in lines if line["type"] == "state"]
        assert "running" in [s["status"] for s in states[1:]]
        assert states[-1]["status"] == "idle"
        assert states[-1]["translated_count"] == states[-1]["total_count"] == 3

    def test_events_stream_after_run(self, client):
        ws = upload(client, ("en.json", EN), ("fr.json", FR)).json()
        client.post(f"/workspaces/{ws['id']}/auto-translate", json={})
        wait_for_run(client, ws["id"])

        r = client.get(f"/workspaces/{ws['id']}/auto-translate/events")
        lines = [json.loads(line) for line in r.text.splitlines() if line.strip()]
        assert lines[0]["type"] == "state"
        assert lines[-1]["status"] == "idle"
        assert lines[-1]["translated_count"] == 2


def test_debug_recent(client):
    r = client.get("/debug/provider/recent", params={"n": 3})
    assert r.status_code == 200
    assert r.json()["ok"] is True
