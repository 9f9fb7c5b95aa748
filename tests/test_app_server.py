import io
import zipfile

import pytest
from fastapi.testclient import TestClient

import app_server
from conftest import page_text


@pytest.fixture
def client():
    app_server._SESSIONS.clear()
    with TestClient(app_server.app) as test_client:
        yield test_client
    app_server._SESSIONS.clear()


@pytest.fixture
def session_id(client: TestClient, template_bytes: bytes, csv_bytes: bytes) -> str:
    sid = client.post("/api/sessions").json()["session_id"]
    response = client.post(
        f"/api/sessions/{sid}/template",
        files={"template": ("template.pdf", template_bytes, "application/pdf")},
    )
    assert response.status_code == 200
    response = client.post(
        f"/api/sessions/{sid}/data",
        files={"data_file": ("people.csv", csv_bytes, "text/csv")},
    )
    assert response.status_code == 200
    return sid


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_session_state_after_uploads(client: TestClient, session_id: str) -> None:
    state = client.get(f"/api/sessions/{session_id}").json()
    assert state["template"] == {"page_count": 1, "page_width": 612.0, "page_height": 792.0}
    assert state["columns"] == ["Name", "Course", "Score"]
    assert state["row_count"] == 2
    assert state["fields"] == []
    assert state["scale_ratio"] is None


def test_field_editing_flow(client: TestClient, session_id: str) -> None:
    base = f"/api/sessions/{session_id}"
    field = client.post(f"{base}/fields", json={"name": "Name"})
    assert field.status_code == 201
    field_id = field.json()["id"]
    assert field_id == "field-Name"

    moved = client.put(f"{base}/fields/{field_id}/position", json={"x": 200, "y": 120}).json()
    assert (moved["x"], moved["y"]) == (200.0, 120.0)

    client.put(f"{base}/zoom", json={"zoom": 5})
    dragged = client.post(f"{base}/fields/{field_id}/drag", json={"dx": 20, "dy": 10}).json()
    assert (dragged["x"], dragged["y"]) == (210.0, 125.0)

    styled = client.put(
        f"{base}/fields/{field_id}/style",
        json={"font_family": "Times New Roman", "font_size": 20, "color": "#ff0000", "text_align": "center"},
    ).json()
    assert styled["style"]["color"] == [255, 0, 0]

    offset = client.put(f"{base}/fields/{field_id}/offset", json={"offset_x": 3, "offset_y": -4}).json()
    assert (offset["offset_x"], offset["offset_y"]) == (3.0, -4.0)

    assert client.delete(f"{base}/fields/{field_id}").status_code == 200
    assert client.get(base).json()["fields"] == []


def test_generate_returns_archive(client: TestClient, session_id: str) -> None:
    base = f"/api/sessions/{session_id}"
    client.put(f"{base}/display", json={"displayed_width": 612})
    field_id = client.post(f"{base}/fields", json={"name": "Name"}).json()["id"]
    client.put(f"{base}/fields/{field_id}/position", json={"x": 100, "y": 100})

    response = client.post(f"{base}/generate")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "certificates.zip" in response.headers["content-disposition"]
    assert response.headers["x-certificates-succeeded"] == "2"
    assert response.headers["x-certificates-failed"] == "0"

    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == ["certificate_1.pdf", "certificate_2.pdf"]
        first = page_text(archive.read("certificate_1.pdf"))
        second = page_text(archive.read("certificate_2.pdf"))
    assert "Alice" in first and "Bob" not in first
    assert "Bob" in second and "Alice" not in second


def test_generate_without_fields_is_rejected(client: TestClient, session_id: str) -> None:
    client.put(f"/api/sessions/{session_id}/display", json={"displayed_width": 612})
    response = client.post(f"/api/sessions/{session_id}/generate")
    assert response.status_code == 409


def test_bad_template_is_rejected(client: TestClient) -> None:
    sid = client.post("/api/sessions").json()["session_id"]
    response = client.post(
        f"/api/sessions/{sid}/template",
        files={"template": ("template.pdf", b"%PDF-1.4 empty pdf content", "application/pdf")},
    )
    assert response.status_code == 400
    assert client.get(f"/api/sessions/{sid}").json()["template"] is None


def test_unknown_column_and_session(client: TestClient, session_id: str) -> None:
    response = client.post(f"/api/sessions/{session_id}/fields", json={"name": "Nope"})
    assert response.status_code == 400
    assert client.get("/api/sessions/missing").status_code == 404
    response = client.put(f"/api/sessions/{session_id}/fields/field-Nope/position", json={"x": 1, "y": 1})
    assert response.status_code == 404


def test_invalid_style_is_a_validation_error(client: TestClient, session_id: str) -> None:
    field_id = client.post(f"/api/sessions/{session_id}/fields", json={"name": "Name"}).json()["id"]
    response = client.put(f"/api/sessions/{session_id}/fields/{field_id}/style", json={"font_size": -1})
    assert response.status_code == 422
    assert response.json()["message"] == "Request validation failed."


def test_column_with_slash_is_addressable(client: TestClient, template_bytes: bytes) -> None:
    sid = client.post("/api/sessions").json()["session_id"]
    base = f"/api/sessions/{sid}"
    client.post(f"{base}/template", files={"template": ("template.pdf", template_bytes, "application/pdf")})
    client.post(
        f"{base}/data",
        files={"data_file": ("dates.csv", b"Date/Time,Name\n2024-05-01,Alice\n", "text/csv")},
    )

    field = client.post(f"{base}/fields", json={"name": "Date/Time"})
    assert field.status_code == 201
    field_id = field.json()["id"]
    assert "/" not in field_id

    moved = client.put(f"{base}/fields/{field_id}/position", json={"x": 150, "y": 90})
    assert moved.status_code == 200
    assert moved.json()["name"] == "Date/Time"
    assert client.delete(f"{base}/fields/{field_id}").status_code == 200
    assert client.get(base).json()["fields"] == []


@pytest.mark.parametrize("width", ["NaN", "Infinity", "-inf"])
def test_non_finite_display_width_is_rejected(client: TestClient, session_id: str, width: str) -> None:
    base = f"/api/sessions/{session_id}"
    client.post(f"{base}/fields", json={"name": "Name"})
    response = client.put(f"{base}/display", json={"displayed_width": width})
    assert response.status_code == 422
    assert client.get(base).json()["scale_ratio"] is None
    assert client.post(f"{base}/generate").status_code == 409


def test_non_finite_position_is_rejected(client: TestClient, session_id: str) -> None:
    base = f"/api/sessions/{session_id}"
    field_id = client.post(f"{base}/fields", json={"name": "Name"}).json()["id"]
    response = client.put(f"{base}/fields/{field_id}/position", json={"x": "NaN", "y": 10})
    assert response.status_code == 422


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_idle_sessions_expire() -> None:
    clock = FakeClock()
    store = app_server.SessionStore(ttl_seconds=60, max_sessions=10, clock=clock)
    idle, _ = store.create()
    active, _ = store.create()

    clock.now += 45
    store.get(active)
    clock.now += 30

    assert store.get(active) is not None
    assert idle not in store
    with pytest.raises(app_server.SessionNotFoundError):
        store.get(idle)


def test_session_cap_evicts_least_recently_used() -> None:
    clock = FakeClock()
    store = app_server.SessionStore(ttl_seconds=3600, max_sessions=2, clock=clock)
    first, _ = store.create()
    clock.now += 1
    second, _ = store.create()
    clock.now += 1
    store.get(first)
    clock.now += 1
    third, _ = store.create()

    assert len(store) == 2
    assert first in store and third in store
    assert second not in store


def test_expired_session_answers_404(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(app_server, "_SESSIONS", app_server.SessionStore(ttl_seconds=60, clock=clock))
    sid = client.post("/api/sessions").json()["session_id"]
    assert client.get(f"/api/sessions/{sid}").status_code == 200

    clock.now += 61
    assert client.get(f"/api/sessions/{sid}").status_code == 404
