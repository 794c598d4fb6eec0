"""Tests for the ETL backend HTTP client using a faked requests session."""

import pytest

from core.config import AppConfig
from core.models import ApiError
from services.api_client import EtlApiClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.reason = "Error" if status_code >= 400 else "OK"

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def _install(monkeypatch, client, method, response):
    calls = []

    def fake(url, **kwargs):
        calls.append((url, kwargs))
        return response

    monkeypatch.setattr(client._session, method, fake)
    return calls


def test_fetch_job_status_sends_token(monkeypatch):
    """Status requests target /status/{jobId} with the bearer token."""
    client = EtlApiClient("http://backend/api/etl/", api_token="abc", timeout=5)
    calls = _install(monkeypatch, client, "get", FakeResponse(payload={"jobId": 1, "status": "RUNNING"}))

    assert client.fetch_job_status("1")["status"] == "RUNNING"
    url, kwargs = calls[0]
    assert url == "http://backend/api/etl/status/1"
    assert kwargs["headers"]["Authorization"] == "Bearer abc"
    assert kwargs["timeout"] == 5


def test_error_response_raises_api_error(monkeypatch):
    """Server errors surface with their message and status code."""
    client = EtlApiClient()
    _install(monkeypatch, client, "get", FakeResponse(500, payload={"message": "Job repository down"}))

    with pytest.raises(ApiError) as excinfo:
        client.fetch_job_status("1")
    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Job repository down"


def test_non_json_success_raises_api_error(monkeypatch):
    client = EtlApiClient()
    _install(monkeypatch, client, "get", FakeResponse(200, payload=None, text="<html>"))

    with pytest.raises(ApiError):
        client.fetch_job_status("1")


def test_upload_file_returns_job_handle(monkeypatch, tmp_path):
    """Uploads post the file and return the job id the backend started."""
    data_file = tmp_path / "orders.csv"
    data_file.write_text("id,total\n1,9.99\n", encoding="utf-8")
    client = EtlApiClient("http://backend/api/etl")
    calls = _install(
        monkeypatch,
        client,
        "post",
        FakeResponse(payload={"status": "success", "jobId": 17, "fileName": "orders.csv"}),
    )

    result = client.upload_file(data_file)

    assert (result.job_id, result.file_name) == ("17", "orders.csv")
    url, kwargs = calls[0]
    assert url == "http://backend/api/etl/upload"
    assert kwargs["files"]["file"][0] == "orders.csv"


def test_upload_rejection_raises(monkeypatch, tmp_path):
    data_file = tmp_path / "bad.csv"
    data_file.write_text("", encoding="utf-8")
    client = EtlApiClient()
    _install(monkeypatch, client, "post", FakeResponse(payload={"status": "error", "message": "Empty file"}))

    with pytest.raises(ApiError, match="Empty file"):
        client.upload_file(data_file)


def test_fetch_processed_data_requires_array(monkeypatch):
    client = EtlApiClient()
    _install(monkeypatch, client, "get", FakeResponse(payload=[{"id": 1}, {"id": 2}]))
    assert len(client.fetch_processed_data()) == 2

    _install(monkeypatch, client, "get", FakeResponse(payload={"records": []}))
    with pytest.raises(ApiError):
        client.fetch_processed_data()


def test_from_config_uses_connection_settings():
    config = AppConfig(base_url="http://etl:9000/api/etl/", api_token="t")
    client = EtlApiClient.from_config(config)
    assert client.base_url == "http://etl:9000/api/etl"
