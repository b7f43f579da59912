from __future__ import annotations

import io
import logging
import re
from collections.abc import Callable
from typing import Any

import httpx
import pandas as pd

from mfl_harmonization.core.exceptions import SourceRequestError, SourceTemporaryError
from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector
from mfl_harmonization.core.retry import with_exponential_backoff
from mfl_harmonization.sources.tabular import frame_to_rows

logger = logging.getLogger(__name__)

_GOOGLE_SHEET = re.compile(r"https://docs\.google\.com/spreadsheets/d/(?P<key>[A-Za-z0-9_-]+)")
_GID = re.compile(r"[#&?]gid=(?P<gid>\d+)")


def csv_export_url(url: str) -> str:
    """Rewrite a Google Sheets edit/view link into its CSV export link; other URLs pass through."""
    match = _GOOGLE_SHEET.match(url)
    if match is None or "/export" in url:
        return url
    export = f"https://docs.google.com/spreadsheets/d/{match.group('key')}/export?format=csv"
    gid = _GID.search(url)
    if gid:
        export += f"&gid={gid.group('gid')}"
    return export


class PublishedSheetFetcher:
    def __init__(
        self,
        url: str,
        source_name: str = "published_sheet",
        connect_timeout_seconds: float = 2.0,
        read_timeout_seconds: float = 10.0,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 0.1,
        metrics: InMemoryHarmonizationMetricsCollector | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._url = csv_export_url(url)
        self.source_name = source_name
        self._timeout = httpx.Timeout(
            connect=connect_timeout_seconds,
            read=read_timeout_seconds,
            write=read_timeout_seconds,
            pool=connect_timeout_seconds,
        )
        self._max_retries = max_retries
        self._retry_base_delay_seconds = retry_base_delay_seconds
        self._metrics = metrics
        self._client_factory = client_factory

    @property
    def url(self) -> str:
        return self._url

    async def fetch_text(self) -> str:
        factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout, follow_redirects=True))
        logger.info("sheet_fetch_started", extra={"source": self.source_name, "url": self._url})
        async with factory() as client:
            text = await with_exponential_backoff(
                lambda: self._request_once(client),
                retries=self._max_retries,
                base_delay_seconds=self._retry_base_delay_seconds,
                operation_name="sheet_fetch",
                on_retry=self._on_retry,
            )
        logger.info("sheet_fetch_completed", extra={"source": self.source_name, "bytes": len(text)})
        return text

    async def fetch_rows(self) -> list[dict[str, Any]]:
        text = await self.fetch_text()
        try:
            frame = pd.read_csv(io.StringIO(text), dtype=str)
        except (ValueError, pd.errors.ParserError) as exc:
            raise SourceRequestError(f"published sheet is not valid csv: {self._url}") from exc
        return frame_to_rows(frame)

    async def _request_once(self, client: httpx.AsyncClient) -> str:
        try:
            response = await client.get(self._url)
        except httpx.TimeoutException as exc:
            raise SourceTemporaryError(f"sheet request timeout: {self._url}") from exc
        except httpx.HTTPError as exc:
            raise SourceRequestError(f"sheet request error: {self._url}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            self._count_error(response.status_code)
            raise SourceTemporaryError(f"sheet temporary error: status={response.status_code}")
        if response.status_code >= 400:
            self._count_error(response.status_code)
            raise SourceRequestError(f"sheet request rejected: status={response.status_code}")
        return response.text

    def _count_error(self, code: int | str) -> None:
        if self._metrics:
            self._metrics.increment_sheet_fetch_error(code=code, source=self.source_name)

    def _on_retry(self, _: int, __: float) -> None:
        if not self._metrics:
            return
        self._metrics.increment_sheet_fetch_retry()
        self._metrics.increment_sheet_fetch_error(code="retry", source=self.source_name)
