import asyncio
import logging

import httpx
import pytest

from roster_import.errors import OcrServiceError
from roster_import.services.ocr_service import (
    CircuitBreaker,
    OcrService,
    reconstruct_table,
    select_best_engine,
)

RESULTS = {
    "results": {
        "tesseract": {"texts": ["Nr ap  Nume  Supr"], "confidences": [0.6, 0.7]},
        "easyocr": {"texts": ["Nr ap  Nume  Suprafata", "1  Popescu Ion  52,5"], "confidences": [0.9, 0.8]},
    }
}


class FakeOcrServer:
    """Scripted OCR endpoints; `overrides` maps (method, path) to a list of status codes."""

    def __init__(self, overrides=None, results=None):
        self.overrides = {key: list(value) for key, value in (overrides or {}).items()}
        self.results = RESULTS if results is None else results
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)

        scripted = self.overrides.get(key)
        if scripted:
            status = scripted.pop(0)
            if status != 200:
                return httpx.Response(status, json={"detail": "scripted failure"})

        if key == ("POST", "/api/session/create"):
            return httpx.Response(200, json={"session_id": "s-1"})
        if key == ("GET", "/api/results/s-1"):
            return httpx.Response(200, json=self.results)
        return httpx.Response(200, json={"status": "ok"})


def make_service(server: FakeOcrServer, **kwargs) -> OcrService:
    kwargs.setdefault("retry_count", 1)
    return OcrService(
        base_url="http://ocr.test",
        timeout=5,
        retry_delay=0,
        transport=httpx.MockTransport(server),
        **kwargs,
    )


def test_recognize_runs_protocol_and_picks_best_engine() -> None:
    server = FakeOcrServer()

    result = asyncio.run(make_service(server).recognize(b"%PDF-1.4", "scan.pdf"))

    assert result.engine == "easyocr"
    assert result.confidence == pytest.approx(0.85)
    assert result.text == "Nr ap  Nume  Suprafata\n1  Popescu Ion  52,5"
    assert server.calls == [
        ("POST", "/api/session/create"),
        ("POST", "/api/upload"),
        ("POST", "/api/process"),
        ("GET", "/api/results/s-1"),
        ("DELETE", "/api/session/s-1"),
    ]


def test_session_is_deleted_when_processing_fails() -> None:
    server = FakeOcrServer({("POST", "/api/process"): [400]})

    with pytest.raises(OcrServiceError) as excinfo:
        asyncio.run(make_service(server).recognize(b"%PDF-1.4", "scan.pdf"))

    assert excinfo.value.code == "PARSE_ERROR"
    assert excinfo.value.status_code == 502
    assert ("GET", "/api/results/s-1") not in server.calls
    assert server.calls[-1] == ("DELETE", "/api/session/s-1")


def test_server_errors_are_retried() -> None:
    server = FakeOcrServer({("POST", "/api/upload"): [503, 200]})

    result = asyncio.run(make_service(server).recognize(b"%PDF-1.4", "scan.pdf"))

    assert result.engine == "easyocr"
    assert server.calls.count(("POST", "/api/upload")) == 2


def test_retries_are_bounded() -> None:
    server = FakeOcrServer({("POST", "/api/upload"): [500, 500, 500]})

    with pytest.raises(OcrServiceError):
        asyncio.run(make_service(server, retry_count=2).recognize(b"%PDF-1.4", "scan.pdf"))

    assert server.calls.count(("POST", "/api/upload")) == 3
    assert server.calls[-1] == ("DELETE", "/api/session/s-1")


def test_open_breaker_short_circuits_calls() -> None:
    now = [0.0]
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=lambda: now[0])
    server = FakeOcrServer({("POST", "/api/session/create"): [400]})
    service = make_service(server, breaker=breaker)

    with pytest.raises(OcrServiceError):
        asyncio.run(service.recognize(b"%PDF-1.4", "scan.pdf"))
    assert breaker.state == "open"

    calls_before = len(server.calls)
    with pytest.raises(OcrServiceError):
        asyncio.run(service.recognize(b"%PDF-1.4", "scan.pdf"))
    assert len(server.calls) == calls_before

    now[0] = 31.0
    asyncio.run(service.recognize(b"%PDF-1.4", "scan.pdf"))
    assert breaker.state == "closed"


@pytest.mark.parametrize(
    "payload",
    [
        {"results": {"tesseract": {"texts": ["a"], "confidences": [None]}}},
        {"results": ["not", "a", "dict"]},
    ],
)
def test_malformed_results_are_an_ocr_failure(payload) -> None:
    breaker = CircuitBreaker(failure_threshold=5, reset_timeout=30)
    server = FakeOcrServer(results=payload)

    with pytest.raises(OcrServiceError) as excinfo:
        asyncio.run(make_service(server, breaker=breaker).recognize(b"%PDF-1.4", "scan.pdf"))

    assert excinfo.value.code == "PARSE_ERROR"
    assert excinfo.value.status_code == 502
    assert breaker.failures == 1
    assert server.calls[-1] == ("DELETE", "/api/session/s-1")


def test_breaker_reopens_after_failed_trial_call() -> None:
    now = [0.0]
    breaker = CircuitBreaker(failure_threshold=3, reset_timeout=10, clock=lambda: now[0])

    for _ in range(3):
        breaker.record_failure()
    assert not breaker.allow_request()

    now[0] = 10.0
    assert breaker.state == "half_open"
    breaker.record_failure()
    assert breaker.state == "open"


def test_select_best_engine_keeps_first_on_tie_and_handles_empty() -> None:
    results = {
        "a": {"texts": ["x"], "confidences": [0.5]},
        "b": {"texts": ["y"], "confidences": [0.5]},
        "c": {"texts": ["z"], "confidences": []},
    }

    assert select_best_engine(results).engine == "a"

    empty = select_best_engine({})
    assert empty.engine is None
    assert empty.confidence == 0.0
    assert empty.texts == []


def test_reconstruct_table_splits_on_wide_gaps_and_tabs(caplog) -> None:
    text = "\n".join([
        "Asociatia Bloc 12",
        "Nr ap   Nume   Suprafata",
        "1   Popescu Ion   52,5",
        "pagina 1",
        "2\tIonescu Ana\t60\textra",
    ])

    with caplog.at_level(logging.WARNING, logger="roster_import.services.ocr_service"):
        table = reconstruct_table(text, min_cells=3)

    assert table.headers == ["Nr ap", "Nume", "Suprafata"]
    assert table.rows == [["1", "Popescu Ion", "52,5"], ["2", "Ionescu Ana", "60"]]
    assert "dropping ['extra']" in caplog.text
