"""Admin account management."""
import pytest

from app.core.errors import EmailTakenError, NotFoundError, ValidationError
from app.core.security import verify_password
from app.models.audit_log import AuditLog
from app.services import user_service

from conftest import auth_headers


class TestUserService:

    def test_create_user(self, db, admin):
        u = user_service.create_user(db, admin, " Gate@Example.com ", "s3cret-pass", name="Gate", role="staff")
        assert u.email == "gate@example.com"
        assert u.role == "staff"
        assert verify_password("s3cret-pass", u.password_hash)
        assert db.query(AuditLog).filter(AuditLog.action == "user.create").count() == 1

    def test_create_duplicate_email(self, db, admin, user):
        with pytest.raises(EmailTakenError):
            user_service.create_user(db, admin, user.email.upper(), "s3cret-pass")

    def test_create_with_unknown_role(self, db, admin):
        with pytest.raises(ValidationError):
            user_service.create_user(db, admin, "x@example.com", "s3cret-pass", role="superuser")

    def test_update_profile(self, db, admin, user):
        u = user_service.update_user(db, admin, user.id, {"name": "Renamed", "phone": "+9198", "email": None})
        assert (u.name, u.phone, u.email) == ("Renamed", "+9198", "driver@example.com")

    def test_update_to_taken_email(self, db, admin, user):
        with pytest.raises(EmailTakenError):
            user_service.update_user(db, admin, user.id, {"email": admin.email})

    def test_cannot_deactivate_self(self, db, admin):
        with pytest.raises(ValidationError):
            user_service.update_user(db, admin, admin.id, {"is_active": False})

    def test_set_role(self, db, admin, user):
        assert user_service.set_role(db, admin, user.id, "staff").role == "staff"
        log = db.query(AuditLog).filter(AuditLog.action == "user.role").one()
        assert log.entity_id == user.id

    @pytest.mark.parametrize("role", ["admin", "user"])
    def test_cannot_change_own_role(self, db, admin, role):
        with pytest.raises(ValidationError):
            user_service.set_role(db, admin, admin.id, role)

    def test_unknown_user(self, db, admin):
        with pytest.raises(NotFoundError):
            user_service.get_user(db, "missing")
        with pytest.raises(NotFoundError):
            user_service.set_role(db, admin, "missing", "staff")

    def test_special_pass_listing(self, db, admin, make_user):
        holder = make_user(is_special_pass=True)
        make_user()
        user_service.set_special_pass(db, admin, holder.id, False)
        assert user_service.list_users(db, special_pass=True) == []
        user_service.set_special_pass(db, admin, holder.id, True)
        assert [u.id for u in user_service.list_users(db, special_pass=True)] == [holder.id]


class TestUserRoutes:

    def test_admin_manages_users(self, client, admin, user):
        h = auth_headers(admin)
        r = client.post("/api/v1/admin/users",
                        json={"email": "staff2@example.com", "password": "s3cret-pass", "role": "staff"}, headers=h)
        assert r.status_code == 201
        staff_id = r.json()["id"]

        assert {u["email"] for u in client.get("/api/v1/admin/users", headers=h).json()} == {
            admin.email, user.email, "staff2@example.com"}
        assert client.get(f"/api/v1/admin/users/{staff_id}", headers=h).json()["role"] == "staff"

        r = client.put(f"/api/v1/admin/users/{staff_id}", json={"name": "Night Shift"}, headers=h)
        assert r.json()["name"] == "Night Shift"
        r = client.put(f"/api/v1/admin/users/{staff_id}/role", json={"role": "user"}, headers=h)
        assert r.json()["role"] == "user"

    def test_duplicate_and_self_role(self, client, admin, user):
        h = auth_headers(admin)
        r = client.post("/api/v1/admin/users", json={"email": user.email, "password": "s3cret-pass"}, headers=h)
        assert r.status_code == 409
        assert r.json()["code"] == "EMAIL_TAKEN"
        r = client.put(f"/api/v1/admin/users/{admin.id}/role", json={"role": "user"}, headers=h)
        assert r.status_code == 400

    def test_special_pass_users(self, client, admin, make_user):
        holder = make_user(is_special_pass=True)
        r = client.get("/api/v1/admin/special-pass-users", headers=auth_headers(admin))
        assert [u["id"] for u in r.json()] == [holder.id]

    def test_staff_cannot_manage_users(self, client, make_user):
        staff = make_user(role="staff")
        assert client.get("/api/v1/admin/users", headers=auth_headers(staff)).status_code == 403
