from unittest.mock import MagicMock

import pytest
import requests

from stores.results import ResultsClient, ResultsSink, build_rows
from stores.settings import SettingsStore
from wheelie.detector import EventRecord
from wheelie.errors import ConfigError, InvalidInput, PersistenceError


RECORDS = [
    EventRecord(2.257, 31.26, 27.04, "12:00:01", "sess-1", 100.0),
    EventRecord(0.5, 22.0, 21.0, "12:00:09", "sess-1", 108.0),
]


# --- settings ---------------------------------------------------------------

def test_settings_round_trip(tmp_path):
    store = SettingsStore(tmp_path / "settings.yaml")
    assert store.load_offset() is None
    assert store.load_theme() == "dark"

    store.save_offset(4.5)
    store.save_theme("light")

    reopened = SettingsStore(tmp_path / "settings.yaml")
    assert reopened.load_offset() == 4.5
    assert reopened.load_theme() == "light"


def test_settings_creates_parent_dirs(tmp_path):
    store = SettingsStore(tmp_path / "nested" / "dir" / "settings.yaml")
    store.save_offset(1)
    assert store.load_offset() == 1.0


def test_corrupt_settings_are_ignored(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("calibration: [unclosed\n")
    store = SettingsStore(path)
    assert store.load_offset() is None
    store.save_offset(2.0)
    assert store.load_offset() == 2.0


def test_non_numeric_offset_is_ignored(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("calibration: level\ntheme: purple\n")
    store = SettingsStore(path)
    assert store.load_offset() is None
    assert store.load_theme() == "dark"


def test_invalid_theme_rejected(tmp_path):
    with pytest.raises(InvalidInput):
        SettingsStore(tmp_path / "s.yaml").save_theme("neon")


def test_unwritable_settings_raise_persistence_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = SettingsStore(blocker / "s.yaml")
    with pytest.raises(PersistenceError):
        store.save_offset(1.5)
    assert store.load_offset() is None


# --- results ----------------------------------------------------------------

def make_client(resp=None, side_effect=None):
    http = MagicMock()
    http.headers = {}
    if side_effect is not None:
        http.request.side_effect = side_effect
    else:
        http.request.return_value = resp
    client = ResultsClient("https://proj.supabase.co/", "secret", session=http)
    return client, http


def ok_response(body):
    resp = MagicMock()
    resp.content = b"x"
    resp.json.return_value = body
    resp.raise_for_status.return_value = None
    return resp


def test_build_rows_rounds_and_truncates():
    rows = build_rows(RECORDS, "ann", "x" * 150)
    assert rows[0]["angle"] == 31.3
    assert rows[0]["avg_angle"] == 27.0
    assert rows[0]["duration"] == 2.26
    assert rows[0]["nickname"] == "ann"
    assert rows[0]["session_id"] == "sess-1"
    assert len(rows[0]["device"]) == 100
    assert rows[0]["created_at"] == rows[1]["created_at"]


def test_client_sets_auth_headers():
    client, http = make_client(ok_response([]))
    assert http.headers["apikey"] == "secret"
    assert http.headers["Authorization"] == "Bearer secret"
    assert client.endpoint == "https://proj.supabase.co/rest/v1/wheelie_results"


def test_missing_credentials():
    with pytest.raises(ConfigError):
        ResultsClient("", "key")
    with pytest.raises(ConfigError):
        ResultsClient("https://x", "")


def test_append_posts_rows():
    client, http = make_client(ok_response([{"id": 1}, {"id": 2}]))
    assert client.append(RECORDS, "ann", "phone") == 2

    method, url = http.request.call_args.args
    kwargs = http.request.call_args.kwargs
    assert method == "POST"
    assert url.endswith("/rest/v1/wheelie_results")
    assert len(kwargs["json"]) == 2
    assert kwargs["headers"] == {"Prefer": "return=representation"}


def test_fetch_filters_and_orders():
    client, http = make_client(ok_response([{"id": 3}]))
    assert client.fetch("ann", limit=10) == [{"id": 3}]
    params = http.request.call_args.kwargs["params"]
    assert params["order"] == "created_at.desc"
    assert params["nickname"] == "eq.ann"
    assert params["limit"] == 10


def test_delete():
    client, http = make_client(ok_response(None))
    client.delete(7)
    assert http.request.call_args.args[0] == "DELETE"
    assert http.request.call_args.kwargs["params"] == {"id": "eq.7"}


def test_http_error_becomes_persistence_error():
    resp = MagicMock()
    resp.status_code = 401
    resp.json.return_value = {"message": "Invalid API key"}
    resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    client, _ = make_client(resp)
    with pytest.raises(PersistenceError, match="401: Invalid API key"):
        client.append(RECORDS, "ann")


def test_connection_error_becomes_persistence_error():
    client, _ = make_client(side_effect=requests.ConnectionError("no route"))
    with pytest.raises(PersistenceError, match="unreachable"):
        client.fetch()


def test_sink_binds_device():
    client = MagicMock()
    client.append.return_value = 2
    sink = ResultsSink(client, device="phone")
    assert sink.append(RECORDS, nickname="ann") == 2
    client.append.assert_called_once_with(RECORDS, "ann", "phone")


def test_from_config_prefers_environment(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "env-key")
    client = ResultsClient.from_config({"url": "https://file", "key": "file-key", "table": "t"})
    assert client.endpoint == "https://env.supabase.co/rest/v1/t"
