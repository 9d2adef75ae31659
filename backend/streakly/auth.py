import time
from typing import Optional

from jose import jwt, JWTError
from .config import settings


def create_access_token(data: dict) -> str:
    """Mint a token the way the external issuer does; the API itself never logs users in."""
    to_encode = data.copy()
    expire = time.time() + settings.JWT_EXPIRES_SEC
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET, algorithm="HS256")
    return encoded_jwt


def decode_access_token(token: str) -> Optional[dict]:
    try:
        decoded_token = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        exp = decoded_token.get("exp")
        if exp is None or exp < time.time():
            return None
        return decoded_token
    except JWTError:
        return None
