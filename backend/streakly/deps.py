from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import decode_access_token
from .db import fetchrow_named, get_db

bearer_scheme = HTTPBearer(auto_error=False)


def _user_id_from_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        return str(UUID(str(payload["sub"])))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    conn=Depends(get_db),
):
    user_id = _user_id_from_token(credentials)
    row = await fetchrow_named(
        conn,
        "users.current",
        """
        SELECT id, email, name, coins, freeze_tokens, fitbit_access_token, google_fit_access_token
        FROM users
        WHERE id = $1
        """,
        user_id,
    )
    if row is None:
        raise HTTPException(status_code=401, detail="User not found")
    return dict(row)
