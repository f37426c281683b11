import csv
import io
from datetime import datetime, timezone

import requests
import responses
from responses import matchers

from catalog_export.__main__ import main
from catalog_export.config import ExportConfig
from catalog_export.errors import ApiError, error_message
from catalog_export.handler import FAILED, OK, handler

API = "https://api.example/cgi-bin"
NOW = datetime(2026, 10, 16, 1, 0, 0, tzinfo=timezone.utc)


def listing(*records, included=()):
    return {"data": list(records), "included": list(included), "meta": {"total": len(records)}}


def add_list(path, params, body):
    responses.add(
        responses.GET, f"{API}/v1{path}", json=body,
        match=[matchers.query_param_matcher(params)],
    )


def config(tmp_path, **overrides):
    values = dict(app_key="key", app_secret="secret", scope_ids=["S1"], api_url=API,
                  list_type="all", local=True, output_dir=str(tmp_path))
    values.update(overrides)
    return ExportConfig(**values)


def mock_catalog():
    responses.add(
        responses.POST, f"{API}/token", json={"access_token": "abc", "expires_in": 7200},
        match=[matchers.json_params_matcher({
            "grant_type": "client_credentials", "app_key": "key", "app_secret": "secret",
        })],
    )
    add_list("/directories", {"per_page": "100", "team_id": "S1"},
             listing({"id": "D1", "type": "directory", "attributes": {"name": "Root"}}))
    add_list("/directories", {"per_page": "100", "team_id": "S1", "directory_id": "D1"},
             listing({"id": "D2", "type": "directory", "attributes": {"name": "Child"}}))
    add_list("/directories", {"per_page": "100", "team_id": "S1", "directory_id": "D2"},
             listing())
    add_list(
        "/docs", {"per_page": "100", "team_id": "S1", "list_type": "all"},
        listing(
            {
                "id": "doc-1", "type": "doc",
                "attributes": {"name": "Guide", "created_at": "2026-10-01 00:00:00",
                               "updated_at": "2026-10-02 00:00:00", "is_star": 0,
                               "read_count": 7, "comment_count": 1},
                "relationships": {
                    "directory": {"data": {"type": "directory", "id": "D2"}},
                    "target": {"data": {"type": "target", "id": "t1"}},
                },
            },
            included=[{"type": "target", "id": "t1",
                       "attributes": {"like_count": 4, "favorite_count": 9}}],
        ),
    )


@responses.activate
def test_end_to_end_local_export(tmp_path):
    mock_catalog()

    assert handler(config(tmp_path), now=NOW) == OK

    report = tmp_path / "YEYX_document_20261016.csv"
    rows = list(csv.reader(io.StringIO(report.read_text(encoding="utf-8"))))
    header, row = rows
    values = dict(zip(header, row))
    assert values["DOC_FOLDER_ROUTE"] == "Root@Child"
    assert values["DOC_NAME"] == "Guide"
    assert values["START"] == "No"
    assert values["LIKE_COUNT"] == "4"
    assert values["FAVORITE_COUNT"] == "9"
    assert values["CREATE_DATE"] == "2026-10-16 09:00:00"
    assert values["CREATE_TIME"] == "2026-10-01 08:00:00"

    list_calls = [c for c in responses.calls if c.request.method == "GET"]
    assert all(c.request.headers["Authorization"] == "Bearer abc" for c in list_calls)


@responses.activate
def test_upload_sink_is_used_outside_local_mode(tmp_path):
    mock_catalog()
    responses.add(responses.DELETE, "https://files.example/YEYX_document_20261016.csv", status=204)
    responses.add(responses.PUT, "https://files.example/YEYX_document_20261016.csv", status=201)

    cfg = config(tmp_path, local=False, upload_url="https://files.example")
    assert handler(cfg, now=NOW) == OK
    assert not list(tmp_path.iterdir())


@responses.activate
def test_failure_becomes_status_not_exception(tmp_path, caplog):
    responses.add(responses.POST, f"{API}/token", status=401,
                  json={"message": "invalid app_secret"})

    assert handler(config(tmp_path)) == FAILED
    assert "invalid app_secret (HTTP 401)" in caplog.text
    assert not list(tmp_path.iterdir())


@responses.activate
def test_directory_failure_aborts_run(tmp_path):
    responses.add(responses.POST, f"{API}/token", json={"access_token": "abc"})
    responses.add(responses.GET, f"{API}/v1/directories", status=500)

    assert handler(config(tmp_path)) == FAILED
    assert not list(tmp_path.iterdir())


def test_main_reports_config_errors(monkeypatch):
    for name in ("CATALOG_APP_KEY", "CATALOG_APP_SECRET", "CATEGORY_IDS", "CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)
    assert main([]) == 1


def test_error_message():
    assert error_message(ApiError("boom", status=400, payload={"error": "bad team"})) == "bad team (HTTP 400)"
    assert error_message(ApiError("boom", status=502)) == "boom"
    assert error_message(requests.ConnectionError("refused")) == "refused"
    assert error_message(KeyError()) == "KeyError"


def test_main_reports_mistyped_config_file(tmp_path, monkeypatch):
    for name, value in {"CATALOG_APP_KEY": "k", "CATALOG_APP_SECRET": "s", "CATEGORY_IDS": "S1"}.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    path = tmp_path / "export.yml"
    path.write_text('page_size: "ten"\n')

    assert main(["--config", str(path)]) == 1
