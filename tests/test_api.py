"""HTTP surface: auth, bookings, floors, wallet and admin routes."""
from app.models.audit_log import AuditLog

from conftest import PASSWORD, auth_headers


class TestAuth:

    def test_register_login_me(self, client):
        r = client.post("/api/v1/auth/register",
                        json={"email": "New@Example.com", "password": "s3cret-pass", "name": "New Driver"})
        assert r.status_code == 201
        r = client.post("/api/v1/auth/login", json={"email": "new@example.com", "password": "s3cret-pass"})
        assert r.status_code == 200
        token = r.json()["access_token"]
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
        assert me["email"] == "new@example.com"
        assert me["wallet"] == 0 and me["dueAmount"] == 0

    def test_duplicate_email(self, client, user):
        r = client.post("/api/v1/auth/register", json={"email": user.email, "password": "another-pass"})
        assert r.status_code == 409

    def test_wrong_password(self, client, user):
        r = client.post("/api/v1/auth/login", json={"email": user.email, "password": "nope"})
        assert r.status_code == 401

    def test_refresh(self, client, user):
        tokens = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD}).json()
        r = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert r.status_code == 200
        # an access token is not a refresh token
        r = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert r.status_code == 401

    def test_requires_token(self, client):
        assert client.get("/api/v1/bookings/active").status_code == 401


class TestBookingRoutes:

    def test_lifecycle(self, client, user, floor):
        h = auth_headers(user)
        created = client.post("/api/v1/bookings", json={"floorId": floor.id}, headers=h).json()
        booking_id = created["bookingId"]
        assert created["floorName"] == floor.name

        assert client.get("/api/v1/bookings/active", headers=h).json()["booking"]["bookingId"] == booking_id
        assert client.get(f"/api/v1/bookings/{booking_id}", headers=h).json()["status"] == "pending"

        qr = client.get(f"/api/v1/bookings/{booking_id}/qr", headers=h)
        assert qr.headers["content-type"].startswith("image/svg+xml")
        pdf = client.get(f"/api/v1/bookings/{booking_id}/pass", headers=h)
        assert pdf.content.startswith(b"%PDF")

        r = client.post(f"/api/v1/bookings/{booking_id}/extend", headers=h)
        assert r.status_code == 409
        assert r.json()["code"] == "INVALID_TRANSITION"

        r = client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=h)
        assert r.json()["status"] == "cancelled"
        assert client.get("/api/v1/bookings/active", headers=h).json()["booking"] is None

        history = client.get("/api/v1/bookings/history", headers=h).json()
        assert history["total"] == 1

    def test_duplicate(self, client, user, floor):
        h = auth_headers(user)
        client.post("/api/v1/bookings", json={"floorId": floor.id}, headers=h)
        r = client.post("/api/v1/bookings", json={"floorId": floor.id}, headers=h)
        assert r.status_code == 409
        assert r.json()["code"] == "DUPLICATE_ACTIVE_BOOKING"

    def test_not_found(self, client, user):
        r = client.get("/api/v1/bookings/SP000000000", headers=auth_headers(user))
        assert r.status_code == 404


class TestFloorRoutes:

    def test_list_and_detail(self, client, floor):
        floors = client.get("/api/v1/floors").json()
        assert floors[0]["availableNormalSpots"] == floor.normal_spots
        assert client.get("/api/v1/floors/available").json()[0]["id"] == floor.id
        assert client.get(f"/api/v1/floors/{floor.id}").json()["name"] == floor.name
        assert client.get("/api/v1/floors/missing").status_code == 404


class TestWalletRoutes:

    def test_recharge_flow(self, client, make_user):
        driver = make_user(wallet=0)
        h = auth_headers(driver)
        started = client.post("/api/v1/wallet/recharge", json={"amount": 150}, headers=h).json()
        assert started["status"] == "pending"
        assert started["upiQrCode"].startswith("upi://pay?")

        r = client.post(f"/api/v1/wallet/recharge/{started['transactionId']}/confirm",
                        json={"outcome": "success"}, headers=h)
        assert r.json()["status"] == "completed"
        assert client.get("/api/v1/wallet", headers=h).json() == {"wallet": 150, "dueAmount": 0}
        assert len(client.get("/api/v1/wallet/transactions", headers=h).json()) == 1

    def test_pay_dues(self, client, make_user):
        debtor = make_user(wallet=50, due_amount=40)
        r = client.post("/api/v1/wallet/pay-dues", json={"amount": 40}, headers=auth_headers(debtor))
        assert r.json() == {"wallet": 10, "dueAmount": 0}

    def test_pay_dues_insufficient(self, client, make_user):
        debtor = make_user(wallet=5, due_amount=40)
        r = client.post("/api/v1/wallet/pay-dues", json={"amount": 40}, headers=auth_headers(debtor))
        assert r.status_code == 400
        assert r.json()["code"] == "INSUFFICIENT_FUNDS"

    def test_user_qr(self, client, user):
        r = client.get("/api/v1/wallet/qr", headers=auth_headers(user))
        assert r.headers["content-type"].startswith("image/svg+xml")


class TestAdminRoutes:

    def test_requires_admin(self, client, user):
        r = client.get("/api/v1/admin/operator-balance", headers=auth_headers(user))
        assert r.status_code == 403

    def test_clear_due_and_operator_balance(self, client, db, admin, make_user):
        debtor = make_user(due_amount=60)
        h = auth_headers(admin)
        assert [u["id"] for u in client.get("/api/v1/admin/defaulters", headers=h).json()] == [debtor.id]

        r = client.post(f"/api/v1/admin/users/{debtor.id}/clear-due", json={"amount": 20, "waiveOff": True}, headers=h)
        assert r.json()["dueAmount"] == 40
        r = client.post(f"/api/v1/admin/users/{debtor.id}/clear-due", json={"amount": 40}, headers=h)
        assert r.json()["dueAmount"] == 0
        assert client.get("/api/v1/admin/operator-balance", headers=h).json() == {"balance": 40}
        assert db.query(AuditLog).count() == 2

        r = client.post(f"/api/v1/admin/users/{debtor.id}/clear-due", json={"amount": 1}, headers=h)
        assert r.status_code == 400

    def test_wallet_adjustments(self, client, admin, make_user):
        driver = make_user(wallet=0)
        h = auth_headers(admin)
        client.post(f"/api/v1/admin/users/{driver.id}/wallet/credit", json={"amount": 100}, headers=h)
        r = client.post(f"/api/v1/admin/users/{driver.id}/wallet/debit", json={"amount": 30}, headers=h)
        assert r.json()["wallet"] == 70
        types = {t["type"] for t in client.get("/api/v1/admin/transactions", headers=h).json()}
        assert types == {"wallet_credit", "wallet_debit", "global_transfer"}

    def test_floor_management(self, client, admin):
        h = auth_headers(admin)
        created = client.post("/api/v1/admin/floors",
                              json={"name": "Roof", "level": 5, "normalSpots": 12, "disabilitySpots": 1}, headers=h)
        assert created.status_code == 201
        floor_id = created.json()["id"]
        r = client.patch(f"/api/v1/admin/floors/{floor_id}", json={"isActive": False}, headers=h)
        assert r.json()["isActive"] is False
        assert client.get("/api/v1/floors/available").json() == []

    def test_special_pass(self, client, admin, user):
        r = client.post(f"/api/v1/admin/users/{user.id}/special-pass", json={"enabled": True},
                        headers=auth_headers(admin))
        assert r.json()["isSpecialPass"] is True

    def test_purge_retention_floor(self, client, admin):
        r = client.post("/api/v1/admin/archived-bookings/purge?olderThanDays=30", headers=auth_headers(admin))
        assert r.status_code == 400
        assert r.json()["code"] == "VALIDATION_ERROR"
        r = client.post("/api/v1/admin/archived-bookings/purge?olderThanDays=365", headers=auth_headers(admin))
        assert r.json() == {"deleted": 0, "olderThanDays": 365}

    def test_staff_can_list_bookings(self, client, make_user, user, floor):
        client.post("/api/v1/bookings", json={"floorId": floor.id}, headers=auth_headers(user))
        staff = make_user(role="staff")
        r = client.get("/api/v1/admin/bookings?status=pending", headers=auth_headers(staff))
        assert r.json()["total"] == 1
