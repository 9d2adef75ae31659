from fastapi import APIRouter, Depends

from .db import get_db
from .deps import get_current_user
from .events import write_event_best_effort
from .rewards import buy_freeze_token
from .schemas import FreezeTokenPurchaseResponse, UserResponse


router = APIRouter(prefix="/v1", tags=["User"])


def format_user_response(user_dict: dict) -> UserResponse:
    return UserResponse(
        id=user_dict["id"],
        email=user_dict["email"],
        name=user_dict.get("name"),
        coins=int(user_dict.get("coins") or 0),
        freezeTokens=int(user_dict.get("freeze_tokens") or 0),
        fitbitConnected=bool(user_dict.get("fitbit_access_token")),
        googleFitConnected=bool(user_dict.get("google_fit_access_token")),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user=Depends(get_current_user)):
    return format_user_response(user)


@router.post("/shop/freeze-token", response_model=FreezeTokenPurchaseResponse, tags=["Shop"])
async def purchase_freeze_token(
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    result = await buy_freeze_token(conn, user_id=str(user["id"]))
    await write_event_best_effort(
        conn,
        event_type="freeze_token_purchased",
        user_id=str(user["id"]),
        payload={"price": result["price"], "freezeTokens": result["freeze_tokens"]},
    )
    return FreezeTokenPurchaseResponse(
        price=result["price"],
        coins=result["coins"],
        freezeTokens=result["freeze_tokens"],
    )
