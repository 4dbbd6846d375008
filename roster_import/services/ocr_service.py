"""
OCR Service
Talks to the external OCR service and rebuilds tables from recognized text.
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from roster_import.config import settings
from roster_import.errors import OcrServiceError
from roster_import.services.excel_parser import ParsedTable, fit_row

logger = logging.getLogger(__name__)

_CELL_SEPARATOR = re.compile(r"\s{2,}|\t")


@dataclass
class OcrResult:
    """Winning engine output."""
    texts: List[str]
    confidence: float
    engine: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(self.texts)


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    Opens after `failure_threshold` failures in a row and rejects calls until
    `reset_timeout` seconds have passed; then one trial call is let through.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if self.clock() - self.opened_at >= self.reset_timeout:
            return "half_open"
        return "open"

    def allow_request(self) -> bool:
        return self.state != "open"

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("OCR circuit breaker closed")
        self.failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failures += 1
        if self.state == "half_open" or self.failures >= self.failure_threshold:
            self.opened_at = self.clock()
            logger.warning(
                "OCR circuit breaker opened after %d consecutive failures", self.failures
            )


def select_best_engine(results: Any) -> OcrResult:
    """
    Pick the engine output with the highest mean confidence.

    Raises:
        OcrServiceError: the results are not keyed by engine, or a confidence
            is not a number
    """
    if not isinstance(results, dict):
        raise OcrServiceError("OCR results returned unexpected payload")
    best = OcrResult(texts=[], confidence=0.0)

    for engine, result in results.items():
        if not isinstance(result, dict):
            continue
        try:
            confidences = [float(c) for c in result.get("confidences") or []]
            texts = [str(t) for t in result.get("texts") or []]
        except (TypeError, ValueError) as e:
            raise OcrServiceError("OCR results returned unexpected payload") from e
        mean = sum(confidences) / len(confidences) if confidences else 0.0
        if mean > best.confidence:
            best = OcrResult(texts=texts, confidence=mean, engine=engine)

    return best


def reconstruct_table(raw_text: str, min_cells: Optional[int] = None) -> ParsedTable:
    """
    Rebuild a table from OCR text.

    Lines are split on runs of two or more spaces or on tabs. The first line
    with at least `min_cells` cells is the header; later qualifying lines are
    data rows, fitted to the header width.
    """
    min_cells = settings.header_min_cells if min_cells is None else min_cells
    headers: List[str] = []
    rows: List[List[Any]] = []

    for line in raw_text.splitlines():
        line = line.strip()
        if not line:
            continue
        cells = [cell.strip() for cell in _CELL_SEPARATOR.split(line) if cell.strip()]
        if len(cells) < min_cells:
            continue
        if not headers:
            headers = cells
        else:
            if len(cells) > len(headers):
                logger.warning(
                    "OCR row has %d cells for %d headers, dropping %s",
                    len(cells), len(headers), cells[len(headers):]
                )
            rows.append(fit_row(cells, len(headers)))

    return ParsedTable(headers=headers, rows=rows)


class OcrService:
    """Client for the session-based OCR service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
        retry_delay: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize OCR service."""
        self.base_url = (base_url or settings.ocr_service_url).rstrip("/")
        self.timeout = settings.ocr_timeout_seconds if timeout is None else timeout
        self.retry_count = settings.ocr_retry_count if retry_count is None else retry_count
        self.retry_delay = settings.ocr_retry_delay_seconds if retry_delay is None else retry_delay
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.ocr_breaker_threshold,
            reset_timeout=settings.ocr_breaker_cooldown_seconds,
        )
        self.transport = transport

    async def recognize(self, content: bytes, filename: str) -> OcrResult:
        """
        Run the full OCR round trip for one document.

        Creates a session, uploads the file, requests processing with two
        engines and fetches results. The session is deleted afterwards
        whether or not the earlier steps succeeded.

        Raises:
            OcrServiceError: a step failed after retries, or the breaker is open
        """
        if not self.breaker.allow_request():
            raise OcrServiceError("OCR service temporarily unavailable, try again later")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            session_id = None
            try:
                session_id = await self._create_session(client)
                await self._request(
                    client, "POST", "/api/upload", "upload",
                    params={"session_id": session_id},
                    files={"files": (filename, content, "application/pdf")},
                )
                await self._request(
                    client, "POST", "/api/process", "process",
                    json={
                        "session_id": session_id,
                        "use_tesseract": True,
                        "use_easyocr": True,
                        "anonymize": False,
                    },
                )
                response = await self._request(
                    client, "GET", f"/api/results/{session_id}", "results"
                )
                result = select_best_engine(self._json(response, "results").get("results", {}))
            except OcrServiceError:
                self.breaker.record_failure()
                raise
            finally:
                if session_id is not None:
                    await self._teardown(client, session_id)

        self.breaker.record_success()
        logger.info(
            "OCR finished for %s: engine=%s confidence=%.2f blocks=%d",
            filename, result.engine, result.confidence, len(result.texts)
        )
        return result

    async def _create_session(self, client: httpx.AsyncClient) -> str:
        response = await self._request(client, "POST", "/api/session/create", "session create")
        session_id = self._json(response, "session create").get("session_id")
        if not session_id:
            raise OcrServiceError("OCR session create returned no session_id")
        return str(session_id)

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        step: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one protocol step, retrying transport errors and 5xx replies."""
        last_error = None

        for attempt in range(self.retry_count + 1):
            try:
                response = await client.request(method, url, **kwargs)
                if response.is_success:
                    return response
                if response.status_code < 500:
                    raise OcrServiceError(
                        f"OCR {step} failed: HTTP {response.status_code}"
                    )
                last_error = f"HTTP {response.status_code}"
            except httpx.TimeoutException:
                last_error = f"timeout after {self.timeout}s"
            except httpx.RequestError as e:
                last_error = f"request error: {e}"

            if attempt < self.retry_count:
                logger.warning(
                    "OCR %s attempt %d failed (%s), retrying", step, attempt + 1, last_error
                )
                await asyncio.sleep(self.retry_delay * (attempt + 1))

        raise OcrServiceError(f"OCR {step} failed: {last_error}")

    async def _teardown(self, client: httpx.AsyncClient, session_id: str) -> None:
        try:
            await client.delete(f"/api/session/{session_id}")
        except httpx.HTTPError as e:
            logger.warning("OCR session %s cleanup failed: %s", session_id, e)

    def _json(self, response: httpx.Response, step: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise OcrServiceError(f"OCR {step} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise OcrServiceError(f"OCR {step} returned unexpected payload")
        return data


# Default singleton instance
ocr_service = OcrService()
