from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from roster_import.config import settings

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SCENARIO_MAPPING = {"Nr.ap.": "unit_number", "Suprafata": "area", "Cota": "ownership_quota", "Email": "email"}


def _upload(client: TestClient, headers: dict, tenant_id, content: bytes, filename: str = "roster.xlsx"):
    return client.post(
        "/api/import/upload",
        files={"file": (filename, content, XLSX_MEDIA_TYPE)},
        data={"tenant_id": str(tenant_id)},
        headers=headers,
    )


def _error_code(response) -> str:
    return response.json()["error"]["code"]


def test_upload_map_validate_fetch_cancel(client, registry, alice_headers, scenario_xlsx) -> None:
    uploaded = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx)
    assert uploaded.status_code == 200
    body = uploaded.json()
    session_id = body["session_id"]
    assert body["version"] == 1
    assert body["preview"]["headers"] == ["Nr.ap.", "Suprafata", "Cota", "Email"]
    assert body["preview"]["total_rows"] == 3
    assert body["preview"]["selected_sheet"] == "Proprietari"
    assert body["preview"]["suggested_mapping"] == SCENARIO_MAPPING
    assert body["preview"]["preview_rows"][2] == ["3", "-5", "33.4", "bad-email"]

    mapped = client.post(
        f"/api/import/{session_id}/mapping",
        json={"mapping": body["preview"]["suggested_mapping"], "version": 1},
        headers=alice_headers,
    )
    assert mapped.status_code == 200
    assert mapped.json() == {"status": "success", "step": 2, "session_status": "MAPPING", "version": 2}

    validated = client.post(f"/api/import/{session_id}/validate", json={"version": 2}, headers=alice_headers)
    assert validated.status_code == 200
    result = validated.json()
    assert result["status"] == "VALIDATING"
    assert result["valid_rows_count"] == 3
    assert [(e["code"], e["row"]) for e in result["errors"]] == [
        ("ROW_VALIDATION_ERROR", 3),
        ("DUPLICATE_UNIT", None),
    ]
    assert [(w["code"], w["field"]) for w in result["warnings"]] == [
        ("ROW_VALIDATION_WARNING", "email"),
        ("MULTI_OWNER_DETECTED", "email"),
    ]
    assert result["errors"][1]["rows"] == [1, 2]

    fetched = client.get(f"/api/import/{session_id}", headers=alice_headers)
    assert fetched.status_code == 200
    state = fetched.json()
    assert state["step"] == 3
    assert state["status"] == "VALIDATING"
    assert state["version"] == result["version"]
    assert state["column_mapping"] == SCENARIO_MAPPING
    assert len(state["diagnostics"]) == 4

    cancelled = client.delete(f"/api/import/{session_id}", headers=alice_headers)
    assert cancelled.json() == {"status": "success"}

    gone = client.get(f"/api/import/{session_id}", headers=alice_headers)
    assert gone.status_code == 404
    assert _error_code(gone) == "SESSION_NOT_FOUND"


def test_clean_roster_becomes_ready_and_flags_existing_units(
    client, registry, alice_headers, make_xlsx
) -> None:
    content = make_xlsx({"Lista": [
        ["Nr. ap.", "Supr. utilă", "Cota parte"],
        ["1", "50", "60"],
        ["99", "40", "40"],
    ]})
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, content).json()["session_id"]

    client.post(
        f"/api/import/{session_id}/mapping",
        json={"mapping": {"Nr. ap.": "unit_number", "Supr. utilă": "area", "Cota parte": "ownership_quota"}},
        headers=alice_headers,
    )
    result = client.post(f"/api/import/{session_id}/validate", headers=alice_headers).json()

    assert result["status"] == "READY"
    assert result["errors"] == []
    assert [(w["code"], w["row"]) for w in result["warnings"]] == [("EXISTING_UNIT_CONFLICT", 2)]


def test_validation_repeats_identically(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]
    client.post(f"/api/import/{session_id}/mapping", json={"mapping": SCENARIO_MAPPING}, headers=alice_headers)

    first = client.post(f"/api/import/{session_id}/validate", headers=alice_headers).json()
    second = client.post(f"/api/import/{session_id}/validate", headers=alice_headers).json()

    assert first["errors"] == second["errors"]
    assert first["warnings"] == second["warnings"]


def test_mapping_without_unit_number_is_rejected(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]

    response = client.post(
        f"/api/import/{session_id}/mapping",
        json={"mapping": {"Suprafata": "area"}},
        headers=alice_headers,
    )

    assert response.status_code == 400
    assert _error_code(response) == "MAPPING_INCOMPLETE"
    state = client.get(f"/api/import/{session_id}", headers=alice_headers).json()
    assert state["status"] == "PENDING"
    assert state["column_mapping"] is None
    assert state["version"] == 1


def test_unknown_field_key_is_rejected(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]

    response = client.post(
        f"/api/import/{session_id}/mapping",
        json={"mapping": {"Nr.ap.": "unit_number", "Cota": "not_a_field"}},
        headers=alice_headers,
    )

    assert response.status_code == 422


def test_validate_before_mapping_is_rejected(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]

    response = client.post(f"/api/import/{session_id}/validate", headers=alice_headers)

    assert response.status_code == 400
    assert _error_code(response) == "MAPPING_INCOMPLETE"


def test_stale_version_is_a_conflict(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]
    client.post(f"/api/import/{session_id}/mapping", json={"mapping": SCENARIO_MAPPING}, headers=alice_headers)

    response = client.post(
        f"/api/import/{session_id}/mapping",
        json={"mapping": SCENARIO_MAPPING, "version": 1},
        headers=alice_headers,
    )

    assert response.status_code == 409
    assert _error_code(response) == "SESSION_CONFLICT"
    assert response.json()["error"]["details"] == {"current_version": 2}


def test_foreign_sessions_are_not_found(client, registry, alice_headers, bob_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]

    responses = [
        client.get(f"/api/import/{session_id}", headers=bob_headers),
        client.post(f"/api/import/{session_id}/mapping", json={"mapping": SCENARIO_MAPPING}, headers=bob_headers),
        client.post(f"/api/import/{session_id}/validate", headers=bob_headers),
        client.post(f"/api/import/{session_id}/sheet", json={"sheet_name": "Other"}, headers=bob_headers),
        client.delete(f"/api/import/{session_id}", headers=bob_headers),
        client.get(f"/api/import/{uuid.uuid4()}", headers=alice_headers),
        client.get("/api/import/not-a-uuid", headers=alice_headers),
    ]

    assert [r.status_code for r in responses] == [404] * len(responses)
    assert {_error_code(r) for r in responses} == {"SESSION_NOT_FOUND"}
    assert client.get(f"/api/import/{session_id}", headers=alice_headers).status_code == 200


def test_upload_to_foreign_tenant_is_rejected(
    client, registry, alice_headers, scenario_xlsx, count_sessions
) -> None:
    response = _upload(client, alice_headers, registry.bob_tenant_id, scenario_xlsx)

    assert response.status_code == 404
    assert _error_code(response) == "TENANT_NOT_FOUND"
    assert count_sessions() == 0


def test_oversize_upload_creates_no_session(
    client, registry, alice_headers, make_xlsx, count_sessions, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)
    content = make_xlsx({"Lista": [["Nr. ap.", "Nume", "Cota"]] + [[str(i), "x" * 50, "1"] for i in range(200)]})
    assert len(content) > 1024

    response = _upload(client, alice_headers, registry.alice_tenant_id, content)

    assert response.status_code == 413
    assert _error_code(response) == "FILE_TOO_LARGE"
    assert count_sessions() == 0


def test_unsupported_format_is_rejected(client, registry, alice_headers, count_sessions) -> None:
    response = _upload(client, alice_headers, registry.alice_tenant_id, b"a;b;c", filename="roster.csv")

    assert response.status_code == 415
    assert _error_code(response) == "UNSUPPORTED_FORMAT"
    assert count_sessions() == 0


def test_workbook_without_rows_is_a_parse_error(
    client, registry, alice_headers, make_xlsx, count_sessions
) -> None:
    content = make_xlsx({"Lista": [["Nr. ap.", "Nume", "Cota"]]})

    response = _upload(client, alice_headers, registry.alice_tenant_id, content)

    assert response.status_code == 422
    assert _error_code(response) == "PARSE_ERROR"
    assert count_sessions() == 0


def test_sheet_switch_is_unsupported(client, registry, alice_headers, scenario_xlsx) -> None:
    session_id = _upload(client, alice_headers, registry.alice_tenant_id, scenario_xlsx).json()["session_id"]

    response = client.post(f"/api/import/{session_id}/sheet", json={"sheet_name": "Other"}, headers=alice_headers)

    assert response.status_code == 400
    assert _error_code(response) == "SHEET_SWITCH_UNSUPPORTED"


def test_requests_without_token_are_unauthorized(client, registry) -> None:
    assert client.get(f"/api/import/{uuid.uuid4()}").status_code == 401
    assert client.get(
        f"/api/import/{uuid.uuid4()}",
        headers={"Authorization": "Bearer not-a-token"},
    ).status_code == 401


def test_health(client) -> None:
    assert client.get("/health").json()["status"] == "healthy"


def test_mapping_fields_are_listed(client, alice_headers) -> None:
    fields = client.get("/api/import/fields", headers=alice_headers).json()

    assert fields[0] == {"key": "unit_number", "label": "Unit number", "required": True}
    assert len(fields) == 16
    assert [f["key"] for f in fields if f["required"]] == ["unit_number"]
