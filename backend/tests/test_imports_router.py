from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from ticket_importer.core.security import create_access_token
from ticket_importer.db.session import get_db
from ticket_importer.main import create_app
from ticket_importer.models.ticket import Ticket


@pytest.fixture()
def client(db):
    app = create_app()

    def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    with TestClient(app) as test_client:
        yield test_client


def _auth(user) -> dict[str, str]:  # noqa: ANN001
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


def _upload(client, project_id: int, body: bytes, user, **params):  # noqa: ANN001
    return client.post(
        f"/api/projects/{project_id}/imports",
        params=params,
        content=body,
        headers=_auth(user),
    )


def test_upload_then_import_round_trip(client, db, seed) -> None:
    upload = _upload(
        client,
        seed.project.id,
        b"Subject;Assignee\nFrom the API;jsmith\n",
        seed.admin,
        delimiter=";",
        filename="tickets.csv",
    )
    assert upload.status_code == 200
    preview = upload.json()
    assert preview["headers"] == ["Subject", "Assignee"]
    assert preview["samples"] == [["From the API", "jsmith"]]
    assert preview["suggested"] == {"Subject": "subject", "Assignee": "assigned_to"}
    assert preview["filename"] == "tickets.csv"

    response = client.post(
        f"/api/projects/{seed.project.id}/imports/result",
        json={
            "token": preview["token"],
            "fields_map": [
                {"column": "Subject", "field": "subject"},
                {"column": "Assignee", "field": "assigned_to"},
            ],
        },
        headers=_auth(seed.admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["handled"], body["failed"], body["aborted"]) == (1, 0, False)
    assert body["affected_projects"] == {"eCookbook": 1}
    ticket = db.execute(select(Ticket).where(Ticket.subject == "From the API")).scalar_one()
    assert ticket.assigned_to_id == seed.jsmith.id


def test_failed_rows_are_returned_aligned_with_headers(client, seed) -> None:
    preview = _upload(client, seed.project.id, b"Subject,Due date\nLate,not-a-date\n", seed.admin).json()

    response = client.post(
        f"/api/projects/{seed.project.id}/imports/result",
        json={
            "token": preview["token"],
            "fields_map": [
                {"column": "Subject", "field": "subject"},
                {"column": "Due date", "field": "due_date"},
            ],
        },
        headers=_auth(seed.admin),
    )

    body = response.json()
    assert body["failed"] == 1
    assert body["headers"] == ["Subject", "Due date"]
    assert body["failed_rows"] == [["Late", "not-a-date"]]


def test_import_requires_permission(client, seed) -> None:
    response = _upload(client, seed.project.id, b"Subject\nA\n", seed.dlopper)

    assert response.status_code == 403


def test_import_requires_authentication(client, seed) -> None:
    response = client.post(f"/api/projects/{seed.project.id}/imports", content=b"Subject\nA\n")

    assert response.status_code == 401


def test_result_without_staged_upload_is_not_found(client, seed) -> None:
    response = client.post(
        f"/api/projects/{seed.project.id}/imports/result",
        json={"token": "2026-01-01T00:00:00.000000"},
        headers=_auth(seed.admin),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "ImportSessionMissingError"


def test_stale_token_is_a_conflict(client, seed) -> None:
    _upload(client, seed.project.id, b"Subject\nA\n", seed.admin)

    response = client.post(
        f"/api/projects/{seed.project.id}/imports/result",
        json={"token": "2020-01-01T00:00:00.000000", "fields_map": [{"column": "Subject", "field": "subject"}]},
        headers=_auth(seed.admin),
    )

    assert response.status_code == 409


def test_upload_to_unknown_project_is_not_found(client, seed) -> None:
    response = _upload(client, 9999, b"Subject\nA\n", seed.admin)

    assert response.status_code == 404


def test_empty_upload_is_rejected(client, seed) -> None:
    response = _upload(client, seed.project.id, b"Subject\n", seed.admin)

    assert response.status_code == 422
    assert response.json()["error"] == "EmptyTableError"
