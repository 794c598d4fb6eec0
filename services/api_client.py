"""Thin HTTP client for the ETL backend REST API with retry-aware requests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.config import DEFAULT_BASE_URL, AppConfig
from core.models import ApiError, UploadResult
from services.logger import get_logger


logger = get_logger("api_client")


class EtlApiClient:
    """HTTP client wrapper for the ``/api/etl`` endpoints of the ETL backend."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_token: str = "",
        timeout: int = 30,
        max_retries: int = 2,
    ) -> None:
        """Configure a session with optional bearer authentication and timeouts."""
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = self._build_session(max_retries)
        self._headers = {"Accept": "application/json"}
        if api_token:
            self._headers["Authorization"] = f"Bearer {api_token}"

    @classmethod
    def from_config(cls, config: AppConfig) -> "EtlApiClient":
        """Build a client from the persisted connection and polling settings."""
        return cls(
            base_url=config.base_url,
            api_token=config.api_token,
            timeout=config.polling.request_timeout,
            max_retries=config.polling.max_retries,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _build_session(self, max_retries: int) -> Session:
        """Return a requests session preloaded with exponential backoff retries."""
        session = requests.Session()
        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=0.3,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _handle_response(self, response: requests.Response) -> Any:
        """Decode JSON responses and raise descriptive errors when necessary."""
        if response.ok:
            try:
                return response.json()
            except ValueError as err:
                raise ApiError("Failed to parse API response", response.status_code) from err
        try:
            payload = response.json()
            message = payload.get("message") or payload.get("error") or response.text
        except (ValueError, AttributeError):
            payload = None
            message = response.text or response.reason
        raise ApiError(message, response.status_code, payload if isinstance(payload, dict) else None)

    def fetch_job_status(self, job_id: str) -> Dict[str, Any]:
        """Query the backend for the current execution state of a job."""
        response = self._session.get(
            f"{self._base_url}/status/{job_id}",
            headers=self._headers,
            timeout=self._timeout,
        )
        data = self._handle_response(response)
        if not isinstance(data, dict):
            raise ApiError("Status response is not a JSON object", response.status_code)
        return data

    def upload_file(self, file_path: Path) -> UploadResult:
        """Upload a data file and return the id of the ETL job it started."""
        logger.info("Uploading %s", file_path)
        with file_path.open("rb") as handle:
            response = self._session.post(
                f"{self._base_url}/upload",
                headers=self._headers,
                files={"file": (file_path.name, handle)},
                timeout=self._timeout,
            )
        data = self._handle_response(response)
        if not isinstance(data, dict):
            raise ApiError("Upload response is not a JSON object", response.status_code)
        if data.get("status") == "error":
            raise ApiError(data.get("message") or "Upload was rejected", response.status_code, data)

        job_id = data.get("jobId")
        if not job_id:
            raise ApiError("Upload response did not include a job id", response.status_code, data)
        return UploadResult(job_id=str(job_id), file_name=data.get("fileName") or file_path.name)

    def fetch_processed_data(self) -> List[Dict[str, Any]]:
        """Download every record the backend has written so far."""
        response = self._session.get(
            f"{self._base_url}/data",
            headers=self._headers,
            timeout=self._timeout,
        )
        data = self._handle_response(response)
        if not isinstance(data, list):
            raise ApiError("Processed data response is not a JSON array", response.status_code)
        return data
