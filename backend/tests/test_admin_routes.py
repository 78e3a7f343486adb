# Overview: Pytest coverage for administration and reporting routes.

"""
Administration API Tests

SECURITY TESTS: every write under /api/users, /api/cities, /api/settings
and /api/backup requires ADMIN; reads of cities and settings are open to
any authenticated user.
"""

from urllib.parse import quote

import pytest

from conftest import BOGOTA, CALI, PASSWORD, auth_headers, get_auth_token


@pytest.fixture
def ana_headers(client, gestor_bogota):
    return auth_headers(get_auth_token(client, "ANA"))


@pytest.fixture
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, "ADMIN"))


class TestRoleGuards:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/users"),
        ("post", "/api/users"),
        ("put", "/api/users/1"),
        ("post", "/api/cities"),
        ("put", "/api/cities/CALI"),
        ("put", "/api/settings"),
        ("get", "/api/backup"),
        ("post", "/api/backup/restore"),
    ])
    def test_gestor_forbidden(self, client, ana_headers, method, path):
        response = getattr(client, method)(path, json={}, headers=ana_headers)
        assert response.status_code == 403
        assert response.json["required_role"] == "ADMIN"

    def test_reads_open_to_gestor(self, client, ana_headers):
        cities = client.get("/api/cities", headers=ana_headers)
        assert cities.status_code == 200
        assert cities.json["cities"] == sorted([BOGOTA, CALI])

        settings = client.get("/api/settings", headers=ana_headers)
        assert settings.status_code == 200
        assert settings.json["settings"]["sealTypes"] == ["Botella", "Cable", "Plástico"]


class TestUsers:
    def test_create_and_login_new_user(self, client, admin_headers):
        response = client.post("/api/users", json={
            "username": "maria",
            "password": "secreto1",
            "fullName": "María Gómez",
            "city": "cali",
        }, headers=admin_headers)

        assert response.status_code == 201
        user = response.json["user"]
        assert user["username"] == "MARIA"
        assert user["role"] == "GESTOR"
        assert user["city"] == CALI

        assert get_auth_token(client, "Maria", "secreto1")

    def test_unknown_city_rejected(self, client, admin_headers):
        response = client.post("/api/users", json={
            "username": "x", "password": "secreto1", "fullName": "X", "city": "LIMA",
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_deactivated_user_loses_access(self, client, admin_headers, gestor_bogota):
        token = get_auth_token(client, "ANA")

        response = client.put(f"/api/users/{gestor_bogota.id}", json={"isActive": False}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json["user"]["isActive"] is False

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        assert get_auth_token(client, "ANA", PASSWORD) is None

    def test_list_users(self, client, admin_headers, gestor_bogota, gestor_cali):
        users = client.get("/api/users", headers=admin_headers).json["users"]
        assert [u["username"] for u in users] == ["ADMIN", "ANA", "LUIS"]

        only_cali = client.get(f"/api/users?city={CALI}", headers=admin_headers).json["users"]
        assert [u["username"] for u in only_cali] == ["LUIS"]


class TestCitiesAndSettings:
    def test_add_and_rename_city(self, client, admin_headers, ana_headers):
        client.post("/api/seals", json={"id": "BOG-1", "type": "Botella"}, headers=ana_headers)

        added = client.post("/api/cities", json={"name": "pereira"}, headers=admin_headers)
        assert added.status_code == 201
        assert added.json["city"]["name"] == "PEREIRA"

        renamed = client.put(f"/api/cities/{quote(BOGOTA)}", json={"name": "Bogotá D.C."}, headers=admin_headers)
        assert renamed.status_code == 200
        assert renamed.json == {"city": "BOGOTÁ D.C.", "seals": 1, "users": 2}

        seal = client.get("/api/seals/BOG-1", headers=admin_headers).json["seal"]
        assert seal["city"] == "BOGOTÁ D.C."

    def test_rename_onto_existing_city_rejected(self, client, admin_headers):
        response = client.put(f"/api/cities/{quote(BOGOTA)}", json={"name": CALI}, headers=admin_headers)
        assert response.status_code == 400

    def test_update_settings(self, client, admin_headers):
        response = client.put("/api/settings", json={
            "title": "Precintos SA",
            "sealTypes": ["Cable", "Cable", " Tornillo "],
            "themeColor": "#AABBCC",
        }, headers=admin_headers)

        assert response.status_code == 200
        settings = response.json["settings"]
        assert settings["title"] == "Precintos SA"
        assert settings["sealTypes"] == ["Cable", "Tornillo"]
        assert settings["themeColor"] == "#aabbcc"

        created = client.post("/api/seals", json={"id": "T-1", "type": "Tornillo"}, headers=admin_headers)
        assert created.status_code == 201

    def test_invalid_settings_write_nothing(self, client, admin_headers):
        response = client.put("/api/settings", json={"title": "Nuevo", "themeColor": "blue"}, headers=admin_headers)
        assert response.status_code == 400

        settings = client.get("/api/settings", headers=admin_headers).json["settings"]
        assert settings["title"] != "Nuevo"


class TestBackupRoutes:
    def test_export_then_restore(self, client, admin_headers, ana_headers):
        client.post("/api/seals", json={"id": "BOG-1", "type": "Botella"}, headers=ana_headers)
        client.put("/api/seals/BOG-1", json={"status": "ASIGNADO", "fields": {"assignedTo": "J"}}, headers=ana_headers)

        snapshot = client.get("/api/backup", headers=admin_headers).json
        assert set(snapshot) >= {"seals", "users", "cities", "settings", "exportedAt"}
        assert all(u["passwordHash"] for u in snapshot["users"])

        client.post("/api/seals", json={"id": "BOG-2", "type": "Cable"}, headers=ana_headers)

        restored = client.post("/api/backup/restore", json=snapshot, headers=admin_headers)
        assert restored.status_code == 200
        assert restored.json["restored"] == {"seals": 1, "users": 2, "cities": 2}

        # Sessions are not part of the snapshot
        assert client.get("/api/seals", headers=admin_headers).status_code == 401
        headers = auth_headers(get_auth_token(client, "ADMIN"))
        seals = client.get("/api/seals?history=1", headers=headers).json["seals"]
        assert [s["id"] for s in seals] == ["BOG-1"]
        assert [h["toStatus"] for h in seals[0]["history"]] == ["ASIGNADO", "ENTRADA_INVENTARIO"]

    def test_malformed_snapshot_rejected(self, client, admin_headers):
        response = client.post("/api/backup/restore", json={"seals": []}, headers=admin_headers)
        assert response.status_code == 400
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 200


class TestReports:
    def test_dashboard(self, client, ana_headers, admin_headers):
        for sid in ("BOG-1", "BOG-2", "BOG-3"):
            client.post("/api/seals", json={"id": sid, "type": "Botella"}, headers=ana_headers)
        client.put("/api/seals/movement", json={
            "ids": ["BOG-1", "BOG-2"], "status": "ASIGNADO", "fields": {"assignedTo": "J"},
        }, headers=ana_headers)
        client.put("/api/seals/BOG-3", json={"status": "DESTRUIDO", "fields": {"observations": "x"}}, headers=ana_headers)

        body = client.get("/api/reports/dashboard?recent=2", headers=ana_headers).json

        assert body["city"] == BOGOTA
        assert body["totals"] == {"total": 3, "available": 0, "assigned": 2, "finalized": 0, "destroyed": 1}
        assert body["byStatus"]["ASIGNADO"] == 2
        assert {"name": CALI, "count": 0} in body["byCity"]
        assert len(body["recentMovements"]) == 2
        assert body["recentMovements"][0]["sealId"] == "BOG-3"

    def test_movement_log_scoped(self, client, ana_headers, gestor_cali):
        luis = auth_headers(get_auth_token(client, "LUIS"))
        client.post("/api/seals", json={"id": "BOG-1", "type": "Botella"}, headers=ana_headers)
        client.post("/api/seals", json={"id": "CAL-1", "type": "Botella"}, headers=luis)

        body = client.get("/api/reports/movements", headers=luis).json
        assert body["count"] == 1
        assert body["movements"][0]["sealId"] == "CAL-1"
        assert body["movements"][0]["city"] == CALI

    def test_movement_log_xlsx(self, client, ana_headers):
        client.post("/api/seals", json={"id": "BOG-1", "type": "Botella"}, headers=ana_headers)
        response = client.get("/api/reports/movements?format=xlsx", headers=ana_headers)
        assert response.status_code == 200
        assert response.mimetype.endswith("spreadsheetml.sheet")
