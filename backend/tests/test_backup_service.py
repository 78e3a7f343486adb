# Overview: Pytest coverage for full-store backup and restore.

import copy
from datetime import datetime

import pytest

from sellomaster.models import City, Seal, SessionToken, User
from sellomaster.services import auth_service, backup_service, seal_service, session_service, settings_service
from sellomaster.services.backup_service import BackupError

from conftest import BOGOTA, CALI, PASSWORD


@pytest.fixture
def populated(db_session, admin, gestor_bogota, gestor_cali, make_seal, clock):
    make_seal("BOG-1", gestor_bogota)
    seal = make_seal("CAL-1", gestor_cali)
    seal_service.apply_transition([seal], "ASIGNADO", {"assignedTo": "JUAN"}, gestor_cali, clock())
    settings_service.update_settings({"title": "Respaldo"})
    db_session.commit()


class TestExportSnapshot:
    def test_snapshot_shape(self, db_session, populated):
        snapshot = backup_service.export_snapshot()

        assert [s["id"] for s in snapshot["seals"]] == ["BOG-1", "CAL-1"]
        assert snapshot["seals"][1]["history"][0]["toStatus"] == "ASIGNADO"
        assert snapshot["cities"] == [BOGOTA, CALI]
        assert snapshot["settings"]["title"] == "Respaldo"
        assert snapshot["exportedAt"].endswith("Z")
        assert all("passwordHash" in u for u in snapshot["users"])

    def test_hashes_can_be_left_out(self, db_session, populated):
        snapshot = backup_service.export_snapshot(include_password_hashes=False)
        assert all("passwordHash" not in u for u in snapshot["users"])


class TestRestoreSnapshot:
    """Restore replaces the store; nothing is merged."""

    def test_restore_replaces_everything(self, db_session, populated, gestor_bogota):
        snapshot = backup_service.export_snapshot()
        session_service.create_session(gestor_bogota)
        seal_service.create_seal("EXTRA", "Cable", gestor_bogota)
        site_count = db_session.query(City).count()
        db_session.commit()

        result = backup_service.restore_snapshot(snapshot)
        db_session.commit()

        assert result == {"seals": 2, "users": 3, "cities": site_count}
        assert db_session.get(Seal, "EXTRA") is None
        assert db_session.query(SessionToken).count() == 0

        cal = db_session.get(Seal, "CAL-1")
        assert cal.status == "ASIGNADO"
        assert cal.assigned_to == "JUAN"
        assert [h.to_status for h in cal.history] == ["ASIGNADO", "ENTRADA_INVENTARIO"]
        assert seal_service.history_problems(cal) == []
        assert settings_service.get_settings()["title"] == "Respaldo"
        assert auth_service.authenticate("ana", PASSWORD) is not None

    def test_request_timestamp_survives_restore(self, db_session, populated, gestor_bogota):
        seal_service.transition_seal(
            "BOG-1", "ASIGNADO", {"assignedTo": "J"}, gestor_bogota,
            request_date=datetime(2026, 1, 5, 9, 30, 0),
        )
        db_session.commit()
        snapshot = backup_service.export_snapshot()
        assert snapshot["seals"][0]["history"][0]["requestDate"] == "2026-01-05T09:30:00Z"

        backup_service.restore_snapshot(snapshot)
        db_session.commit()

        bog = db_session.get(Seal, "BOG-1")
        assert bog.history[0].request_date == datetime(2026, 1, 5, 9, 30, 0)
        assert bog.history[1].request_date is None

    def test_missing_keys_rejected_before_deleting(self, db_session, populated):

        with pytest.raises(BackupError):
            backup_service.restore_snapshot({"seals": [], "users": []})
        assert db_session.query(Seal).count() == 2

    def test_inconsistent_history_rejected(self, db_session, populated):
        snapshot = backup_service.export_snapshot()
        broken = copy.deepcopy(snapshot)
        broken["seals"][1]["status"] = "INSTALADO"

        with pytest.raises(BackupError) as exc:
            backup_service.restore_snapshot(broken)
        assert "CAL-1" in str(exc.value)
        assert db_session.query(User).count() == 3

    def test_duplicate_ids_rejected(self, db_session, populated):
        snapshot = backup_service.export_snapshot()
        snapshot["seals"].append(copy.deepcopy(snapshot["seals"][0]))
        with pytest.raises(BackupError):
            backup_service.restore_snapshot(snapshot)

    def test_users_without_hash_rejected(self, db_session, populated):
        snapshot = backup_service.export_snapshot(include_password_hashes=False)
        with pytest.raises(BackupError):
            backup_service.restore_snapshot(snapshot)

    def test_unknown_status_rejected(self, db_session, populated):
        snapshot = backup_service.export_snapshot()
        snapshot["seals"][0]["history"][0]["toStatus"] = "PERDIDO"
        with pytest.raises(BackupError):
            backup_service.restore_snapshot(snapshot)
