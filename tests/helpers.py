from app.core.security import create_access_token
from config.settings import settings

# Captured at import time; conftest sets API_KEY before the app is loaded.
TEST_API_KEY = settings.API_KEY


def token_for(user) -> str:
    return create_access_token({"sub": str(user.id)})


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


def bearer_key(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}
