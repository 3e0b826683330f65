from schoolfee.application.services.security_service import create_access_token


def login(client, email: str, password: str) -> str:
    response = client.post(
        "/api/v1/auth/token",
        data={"username": email, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def token_for_user(user_id: int) -> str:
    return create_access_token(user_id)


def user_header(user_id: int) -> dict[str, str]:
    return auth_header(token_for_user(user_id))
