import asyncio
from datetime import UTC, datetime

import pydantic
import requests
import structlog

from heads_import.bulk_import.base import BulkImportService
from heads_import.bulk_import.schemas import (
    ChunkRequest,
    ChunkResult,
    FinalizeRequest,
    HealthStatus,
    ImportSession,
    StatusResult,
)
from heads_import.config import Settings, settings
from heads_import.exceptions import AppError, ServiceUnavailableError, UpstreamError
from heads_import.imports.models import SelectedFile

logger = structlog.get_logger()


def _error_message(response: requests.Response) -> str:
    """Pull a readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    text = response.text.strip()
    return text[:200] if text else (response.reason or "request failed")


def _is_retryable(exc: AppError) -> bool:
    if isinstance(exc, ServiceUnavailableError):
        return True
    return isinstance(exc, UpstreamError) and exc.status_code is not None and exc.status_code >= 500


class HttpBulkImportService(BulkImportService):
    def __init__(
        self,
        config: Settings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or settings
        self._session = session or requests.Session()
        self._base_url = self._config.service_base_url.rstrip("/")
        self._prefix = "/" + self._config.import_path_prefix.strip("/")

        self._session.headers.update(
            {"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"}
        )
        if self._config.service_token:
            self._session.headers["Authorization"] = f"Bearer {self._config.service_token}"

    async def init_session(self, file: SelectedFile) -> ImportSession:
        files = {self._config.upload_field_name: (file.name, file.content, file.content_type)}
        # Uploads are not retried: a repeated upload opens a second session.
        data = await self._request(
            "POST",
            self._import_url("init"),
            retry=False,
            files=files,
            timeout=self._config.init_timeout_seconds,
        )
        return self._parse(ImportSession, data, "init")

    async def process_chunk(self, session_id: str, start_idx: int, chunk_size: int) -> ChunkResult:
        payload = ChunkRequest(session_id=session_id, start_idx=start_idx, chunk_size=chunk_size)
        data = await self._request(
            "POST",
            self._import_url("chunk"),
            json=payload.model_dump(by_alias=True),
        )
        return self._parse(ChunkResult, data, "chunk")

    async def get_status(self, session_id: str) -> StatusResult:
        data = await self._request("GET", self._import_url(f"status/{session_id}"))
        return self._parse(StatusResult, data, "status")

    async def finalize(self, session_id: str) -> None:
        payload = FinalizeRequest(session_id=session_id)
        await self._request(
            "POST",
            self._import_url("finalize"),
            json=payload.model_dump(by_alias=True),
        )

    async def check_health(self) -> HealthStatus:
        try:
            data = await self._request(
                "GET",
                f"{self._base_url}{self._config.health_path}",
                retry=False,
                timeout=self._config.health_timeout_seconds,
            )
            return HealthStatus.model_validate(data)
        except (AppError, pydantic.ValidationError) as exc:
            logger.warning("bulk_import_health_check_failed", error=str(exc))
            return HealthStatus(
                status="error",
                timestamp=datetime.now(UTC).isoformat(),
                error=getattr(exc, "message", str(exc)),
            )

    async def close(self) -> None:
        await asyncio.to_thread(self._session.close)

    def _import_url(self, path: str) -> str:
        return f"{self._base_url}{self._prefix}/{path}"

    async def _request(self, method: str, url: str, *, retry: bool = True, **kwargs) -> dict:
        """Send a request off the event loop, retrying transient failures with backoff."""
        kwargs.setdefault("timeout", self._config.request_timeout_seconds)
        attempts = self._config.retry_attempts if retry else 0

        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self._send, method, url, **kwargs)
            except UpstreamError as exc:
                if attempt >= attempts or not _is_retryable(exc):
                    raise
                delay = self._config.retry_base_delay_seconds * (2**attempt)
                logger.warning(
                    "bulk_import_request_retry",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    delay=delay,
                    error=exc.message,
                    status=exc.status_code,
                )
                await asyncio.sleep(delay)
                attempt += 1

    def _send(self, method: str, url: str, **kwargs) -> dict:
        """Perform a single blocking request (to be run in a thread)."""
        try:
            response = self._session.request(method, url, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            raise ServiceUnavailableError(f"Bulk import service unreachable: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"Bulk import request failed: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamError(_error_message(response), status_code=response.status_code)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Bulk import service returned invalid JSON from {url}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise UpstreamError(
                f"Bulk import service returned unexpected payload from {url}",
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _parse(model: type[pydantic.BaseModel], data: dict, operation: str):
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as exc:
            logger.error("bulk_import_malformed_response", operation=operation, error=str(exc))
            raise UpstreamError(f"Malformed {operation} response from bulk import service") from exc
