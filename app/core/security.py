import hmac
import logging
import bcrypt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi import Request
from uuid import UUID

from config.settings import settings
from app.core.exceptions import Unauthorized

logger = logging.getLogger("tasktrack.auth")

# --- Password Hashing (using bcrypt directly) ---

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain-text password against a hashed password using bcrypt.
    """
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )

def get_password_hash(password: str) -> str:
    """
    Generates a bcrypt hash for a plain-text password.
    """
    hashed_bytes = bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    )
    # Decode back to a string to store in our database
    return hashed_bytes.decode('utf-8')


# --- JSON Web Token (JWT) Management ---

def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Creates a new, signed JWT access token.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

def decode_user_id(token: str) -> UUID | None:
    """
    Validates signature and expiry and returns the user id held in 'sub'.
    Returns None for any token that cannot be trusted.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None

    user_id_str = payload.get("sub")
    if not isinstance(user_id_str, str):
        return None
    try:
        return UUID(user_id_str)
    except ValueError:
        return None


# --- Credential Extraction ---
# One precedence order for every route: Authorization header, then cookie.

def extract_bearer_header(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    scheme, _, credential = auth.partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        return None
    return credential.strip()

def extract_credential(request: Request) -> str | None:
    return extract_bearer_header(request) or request.cookies.get(settings.SESSION_COOKIE_NAME) or None

def is_bypass_key(credential: str | None) -> bool:
    if not settings.API_KEY or not credential:
        return False
    return hmac.compare_digest(credential.encode("utf-8"), settings.API_KEY.encode("utf-8"))


# --- Authorization Decision ---

@dataclass(frozen=True)
class Identity:
    user_id: UUID

@dataclass(frozen=True)
class Bypass:
    """Trusted automation presenting the pre-shared API key."""

@dataclass(frozen=True)
class Denied:
    reason: str

AuthDecision = Identity | Bypass | Denied
Principal = Identity | Bypass


def authorize(request: Request, allow_bypass: bool = False) -> AuthDecision:
    """
    Decides who is calling. Evaluated once per request.

    The bypass key is only honoured where the route allows it, and only
    from the Authorization header.
    """
    if allow_bypass and is_bypass_key(extract_bearer_header(request)):
        return Bypass()

    token = extract_credential(request)
    if not token:
        return Denied("Unauthorized")

    user_id = decode_user_id(token)
    if user_id is None:
        return Denied("Invalid token")

    return Identity(user_id=user_id)


# --- FastAPI Dependencies ---

def _raise_if_denied(decision: AuthDecision) -> None:
    if isinstance(decision, Denied):
        logger.debug(f"Request denied: {decision.reason}")
        raise Unauthorized(decision.reason)

async def get_current_identity(request: Request) -> Identity:
    """
    The gatekeeper for every protected user-facing endpoint.
    """
    decision = authorize(request, allow_bypass=False)
    _raise_if_denied(decision)
    return decision

async def get_fixing_principal(request: Request) -> Principal:
    """
    Gatekeeper for the "mark as fixing" endpoints, which also accept the
    automation bypass key.
    """
    decision = authorize(request, allow_bypass=True)
    _raise_if_denied(decision)
    return decision

