from datetime import timedelta

from jose import jwt
from sqlalchemy.orm import Session

from conftest import active_otps, create_user
from retail_api.config import settings
from retail_api.models.otp_verification import OTPPurpose
from retail_api.models.user import User
from retail_api.utils.security import utcnow

PASSWORD = "secret123"


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register_initiate(client, email: str = "a@x.com"):
    return client.post(
        "/api/auth/register/initiate",
        json={
            "email": email,
            "firstName": "Ada",
            "lastName": "Lovelace",
            "password": PASSWORD,
            "confirmPassword": PASSWORD,
        },
    )


def _login(client, email: str, password: str):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_registration_scenario(client, db_session: Session, notifier):
    first = _register_initiate(client)
    assert first.status_code == 200
    assert first.json()["data"]["delivered"] is True
    assert len(active_otps(db_session, "a@x.com", OTPPurpose.REGISTER)) == 1

    second = _register_initiate(client)
    assert second.status_code == 200
    rows = active_otps(db_session, "a@x.com", OTPPurpose.REGISTER)
    assert len(rows) == 1
    code = notifier.last_code("a@x.com", OTPPurpose.REGISTER)
    assert rows[0].otpCode == code

    complete = client.post(
        "/api/auth/register/complete",
        json={"email": "a@x.com", "otp": code, "firstName": "Ada", "lastName": "Lovelace", "password": PASSWORD},
    )
    assert complete.status_code == 201
    data = complete.json()["data"]
    assert data["user"]["isEmailVerified"] is True
    assert "password" not in data["user"]

    db_session.expire_all()
    user = db_session.query(User).filter(User.email == "a@x.com").one()
    assert user.isEmailVerified is True

    me = client.get("/api/auth/me", headers=_auth(data["token"]))
    assert me.status_code == 200
    assert me.json()["data"]["user"]["id"] == user.id


def test_register_initiate_for_existing_email_conflicts(client, db_session: Session):
    create_user(db_session, email="a@x.com", password=PASSWORD)

    resp = _register_initiate(client)

    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "DUPLICATE_ENTRY"


def test_register_initiate_validates_payload(client):
    resp = client.post(
        "/api/auth/register/initiate",
        json={"email": "a@x.com", "firstName": "Ada", "lastName": "L",
              "password": PASSWORD, "confirmPassword": "different1"},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    short = client.post(
        "/api/auth/register/initiate",
        json={"email": "a@x.com", "firstName": "Ada", "lastName": "L",
              "password": "abc", "confirmPassword": "abc"},
    )
    assert short.status_code == 422


def test_register_complete_with_wrong_code(client, notifier):
    _register_initiate(client)
    code = notifier.last_code("a@x.com", OTPPurpose.REGISTER)
    wrong = "999999" if code != "999999" else "999998"

    resp = client.post(
        "/api/auth/register/complete",
        json={"email": "a@x.com", "otp": wrong, "password": PASSWORD},
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "OTP_INVALID"


def test_register_complete_rejects_malformed_code(client):
    resp = client.post(
        "/api/auth/register/complete",
        json={"email": "a@x.com", "otp": "12ab", "password": PASSWORD},
    )
    assert resp.status_code == 422


def test_email_is_normalised(client, notifier):
    _register_initiate(client, email="Mixed@Shop.COM")
    assert notifier.sent[-1][0] == "mixed@shop.com"


def test_login_errors(client, db_session: Session):
    create_user(db_session, email="new@x.com", password=PASSWORD, verified=False)

    unverified = _login(client, "new@x.com", PASSWORD)
    assert unverified.status_code == 403
    assert unverified.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

    wrong = _login(client, "new@x.com", "bad-password")
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_password_reset_scenario(client, db_session: Session, notifier):
    create_user(db_session, email="r@x.com", password=PASSWORD)

    init = client.post("/api/auth/password-reset/initiate", json={"email": "r@x.com"})
    assert init.status_code == 200
    code = notifier.last_code("r@x.com", OTPPurpose.RESET_PASSWORD)

    verify = client.post("/api/auth/password-reset/verify-otp", json={"email": "r@x.com", "otp": code})
    assert verify.status_code == 200
    token = verify.json()["data"]["token"]

    complete = client.post(
        "/api/auth/password-reset/complete",
        json={"token": token, "password": "new-secret", "confirmPassword": "new-secret"},
    )
    assert complete.status_code == 200

    assert _login(client, "r@x.com", "new-secret").status_code == 200
    assert _login(client, "r@x.com", PASSWORD).status_code == 401

    again = client.post(
        "/api/auth/password-reset/complete",
        json={"token": token, "password": "third-secret", "confirmPassword": "third-secret"},
    )
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "RESET_TOKEN_INVALID"


def test_password_reset_initiate_does_not_reveal_accounts(client, db_session: Session):
    create_user(db_session, email="known@x.com", password=PASSWORD)

    known = client.post("/api/auth/password-reset/initiate", json={"email": "known@x.com"})
    unknown = client.post("/api/auth/password-reset/initiate", json={"email": "unknown@x.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_resend_otp_cooldown(client, notifier):
    _register_initiate(client)

    resp = client.post("/api/auth/resend-otp", json={"email": "a@x.com", "type": "register"})

    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "OTP_ALREADY_ACTIVE"
    assert len(notifier.sent) == 1


def test_resend_otp_without_active_code(client, notifier):
    resp = client.post("/api/auth/resend-otp", json={"email": "a@x.com", "type": "reset-password"})

    assert resp.status_code == 200
    assert resp.json()["message"] == "New OTP sent to your email"
    assert notifier.sent[-1][2] == OTPPurpose.RESET_PASSWORD


def test_resend_otp_rejects_unknown_purpose(client):
    resp = client.post("/api/auth/resend-otp", json={"email": "a@x.com", "type": "login"})
    assert resp.status_code == 422


def test_me_requires_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_me_rejects_bad_tokens(client):
    tampered = client.get("/api/auth/me", headers=_auth("not-a-token"))
    assert tampered.status_code == 403

    expired = jwt.encode(
        {"sub": "whoever", "type": "access", "exp": utcnow() - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    assert client.get("/api/auth/me", headers=_auth(expired)).status_code == 403

    orphan = jwt.encode(
        {"sub": "no-such-user", "type": "access", "exp": utcnow() + timedelta(days=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    resp = client.get("/api/auth/me", headers=_auth(orphan))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


def test_logout_with_and_without_token(client, db_session: Session):
    create_user(db_session, email="l@x.com", password=PASSWORD)
    token = _login(client, "l@x.com", PASSWORD).json()["data"]["token"]

    assert client.post("/api/auth/logout").status_code == 200
    assert client.post("/api/auth/logout", headers=_auth("garbage")).status_code == 200
    resp = client.post("/api/auth/logout", headers=_auth(token))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Logged out successfully"


def test_update_profile(client, db_session: Session):
    create_user(db_session, email="p@x.com", password=PASSWORD)
    create_user(db_session, email="taken@x.com", password=PASSWORD)
    token = _login(client, "p@x.com", PASSWORD).json()["data"]["token"]

    resp = client.put("/api/auth/profile", headers=_auth(token), json={"firstName": "Grace", "phone": "555-0101"})
    assert resp.status_code == 200
    user = resp.json()["data"]["user"]
    assert user["firstName"] == "Grace"
    assert user["phone"] == "555-0101"
    assert user["lastName"] == "User"

    clash = client.put("/api/auth/profile", headers=_auth(token), json={"email": "taken@x.com"})
    assert clash.status_code == 409

    anonymous = client.put("/api/auth/profile", json={"firstName": "Nobody"})
    assert anonymous.status_code == 401


def test_login_with_oversized_password_is_invalid_credentials(client, db_session: Session):
    create_user(db_session, email="h@x.com", password=PASSWORD)

    resp = _login(client, "h@x.com", "a" * 5000)

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_register_rejects_password_longer_than_bcrypt_accepts(client, notifier):
    long_password = "a" * 73

    init = client.post(
        "/api/auth/register/initiate",
        json={"email": "a@x.com", "firstName": "Ada", "lastName": "L",
              "password": long_password, "confirmPassword": long_password},
    )
    assert init.status_code == 422
    assert notifier.sent == []

    complete = client.post(
        "/api/auth/register/complete",
        json={"email": "a@x.com", "otp": "123456", "password": "a" * 5000},
    )
    assert complete.status_code == 422


def test_register_accepts_password_at_bcrypt_limit(client, notifier):
    password = "a" * 72
    init = client.post(
        "/api/auth/register/initiate",
        json={"email": "a@x.com", "firstName": "Ada", "lastName": "L",
              "password": password, "confirmPassword": password},
    )
    assert init.status_code == 200
    code = notifier.last_code("a@x.com", OTPPurpose.REGISTER)

    complete = client.post(
        "/api/auth/register/complete",
        json={"email": "a@x.com", "otp": code, "password": password},
    )
    assert complete.status_code == 201
    assert _login(client, "a@x.com", password).status_code == 200


def test_resend_reset_code_cooldown_only_applies_to_real_accounts(client, db_session: Session):
    create_user(db_session, email="known@x.com", password=PASSWORD)
    for email in ("known@x.com", "unknown@x.com"):
        client.post("/api/auth/password-reset/initiate", json={"email": email})

    known = client.post("/api/auth/resend-otp", json={"email": "known@x.com", "type": "reset-password"})
    unknown = client.post("/api/auth/resend-otp", json={"email": "unknown@x.com", "type": "reset-password"})

    assert known.status_code == 429
    assert unknown.status_code == 200
