"""Tests for the local SCIM endpoints and sync triggers."""

import pytest
from flask.testing import FlaskClient

from mockidp.app import create_app
from mockidp.scim.schema import SCHEMA_ERROR, SCHEMA_LIST_RESPONSE, SCHEMA_USER


class TestAuthentication:
    """Every SCIM endpoint requires the configured bearer token."""

    def test_missing_token(self, client: FlaskClient) -> None:
        response = client.get("/scim/v2/Users")

        assert response.status_code == 401
        assert response.json["detail"] == "Unauthorized"
        assert response.json["schemas"] == [SCHEMA_ERROR]

    def test_wrong_token(self, client: FlaskClient) -> None:
        response = client.get("/scim/v2/Users", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json["detail"] == "Invalid token"

    def test_basic_auth_rejected(self, client: FlaskClient) -> None:
        response = client.get("/scim/v2/Users", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert response.status_code == 401

    def test_unconfigured_token_rejects_everything(self, app_config) -> None:
        app_config.scim.token = ""
        app = create_app(app_config, overrides={"TESTING": True})

        response = app.test_client().get("/scim/v2/Users", headers={"Authorization": "Bearer anything"})

        assert response.status_code == 401

    def test_sync_requires_token(self, client: FlaskClient, fake_scim) -> None:
        response = client.post("/scim/v2/sync")

        assert response.status_code == 401
        assert fake_scim.requests == []


class TestUsers:
    """Tests for the Users resource."""

    def test_list_users(self, client: FlaskClient, scim_headers) -> None:
        response = client.get("/scim/v2/Users", headers=scim_headers)

        assert response.status_code == 200
        body = response.json
        assert body["schemas"] == [SCHEMA_LIST_RESPONSE]
        assert body["totalResults"] == 5
        assert body["startIndex"] == 1
        assert [r["id"] for r in body["Resources"]] == ["1", "2", "3", "4", "5"]
        first = body["Resources"][0]
        assert first["schemas"] == [SCHEMA_USER]
        assert first["userName"] == "darwin+idp1@datasaur.ai"
        assert first["emails"][0]["value"] == "darwin+idp1@datasaur.ai"
        assert first["name"] == {"givenName": "Darwin", "familyName": "One"}

    @pytest.mark.parametrize(
        ("query", "expected_ids"),
        [
            ({"startIndex": 2, "count": 2}, ["2", "3"]),
            ({"startIndex": 5}, ["5"]),
            ({"startIndex": 9}, []),
            ({"count": 0}, ["1", "2", "3", "4", "5"]),
        ],
    )
    def test_pagination(self, client: FlaskClient, scim_headers, query, expected_ids) -> None:
        response = client.get("/scim/v2/Users", headers=scim_headers, query_string=query)

        body = response.json
        assert [r["id"] for r in body["Resources"]] == expected_ids
        assert body["totalResults"] == 5
        assert body["itemsPerPage"] == len(expected_ids)

    def test_get_user(self, client: FlaskClient, scim_headers) -> None:
        response = client.get("/scim/v2/Users/3", headers=scim_headers)

        assert response.status_code == 200
        assert response.json["userName"] == "darwin+idp3@datasaur.ai"
        assert response.json["groups"][0]["value"] == "REVIEWER"

    def test_get_missing_user(self, client: FlaskClient, scim_headers) -> None:
        response = client.get("/scim/v2/Users/99", headers=scim_headers)

        assert response.status_code == 404
        assert response.json == {"schemas": [SCHEMA_ERROR], "detail": "User not found", "status": "404"}

    def test_search(self, client: FlaskClient, scim_headers) -> None:
        response = client.post("/scim/v2/Users/.search", headers=scim_headers, json={})

        assert response.status_code == 200
        assert response.json["totalResults"] == 5


class TestSync:
    """Tests for the sync triggers."""

    def test_scim_sync(self, client: FlaskClient, scim_headers, fake_scim) -> None:
        response = client.post("/scim/v2/sync", headers=scim_headers)

        assert response.status_code == 200
        body = response.json
        assert body["success"] is True
        assert body["message"] == "User sync completed: 5 successful, 0 failed"
        assert body["results"]["success"] == 5
        assert len(fake_scim.resources) == 5

    def test_admin_sync_reports_failures(self, client: FlaskClient, fake_scim) -> None:
        fake_scim.create_status["darwin+idp4@datasaur.ai"] = 500

        response = client.post("/admin/sync-users")

        assert response.status_code == 200
        body = response.json
        assert body["message"] == "User sync completed: 4 successful, 1 failed"
        assert body["results"]["failures"] == [
            "darwin+idp4@datasaur.ai: Creation failed with status: 500"
        ]

    def test_sync_setup_error(self, app_config) -> None:
        def broken_factory():
            raise RuntimeError("no api key")

        app = create_app(app_config, reconciler_factory=broken_factory, overrides={"TESTING": True})

        response = app.test_client().post("/admin/sync-users")

        assert response.status_code == 500
        assert response.json["success"] is False
        assert "no api key" in response.json["message"]
