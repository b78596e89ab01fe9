from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from savings_gateway.auth import verify_token
from savings_gateway.config import settings
from savings_gateway.database import SessionLocal
from savings_gateway.errors import ConflictError, NotFoundError, ValidationError
from savings_gateway.faces import load_models, to_descriptor
from savings_gateway.ledger import LedgerStore
from savings_gateway.payfast_service import create_payment
from savings_gateway.signature import build_signature, verify_signature
from savings_gateway.webhook import parse_notification

router = APIRouter()
face_models = load_models()


def get_face_models():
    return face_models


def _require_owner(auth: dict, user_id: str) -> None:
    if auth.get("sub") != user_id:
        raise HTTPException(status_code=403, detail="Not allowed to read another user's data")


class PaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Any = None
    user_id: Optional[str] = Field(None, alias="userId")


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    id: Optional[str] = None
    face_descriptor: Optional[List[Any]] = Field(None, alias="faceDescriptor")


@router.post("/users", status_code=201)
def register_user(request: RegisterRequest, models=Depends(get_face_models)):
    """Create an account with a zero balance.

    No token is required: registration comes before the first login. ``id`` lets
    an account created through an identity provider keep the provider's subject.
    """
    username = request.username.strip()
    if not username:
        return JSONResponse(status_code=400, content={"error": "username is required"})

    descriptor = None
    if request.face_descriptor is not None:
        try:
            descriptor = to_descriptor(models, request.face_descriptor).tolist()
        except ValueError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})

    store = LedgerStore(SessionLocal)
    try:
        user = store.create_user(username, face_descriptor=descriptor, user_id=request.id or None)
    except ConflictError as exc:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    return {
        "id": user.id,
        "username": user.username,
        "balance": "0.00",
        "has_face": descriptor is not None,
    }


@router.post("/payfast/create-payment")
def create_payment_api(
    request: PaymentRequest,
    auth=Depends(verify_token)
):
    store = LedgerStore(SessionLocal)
    try:
        intent = create_payment(request.amount, request.user_id, store, settings)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    return {
        "success": True,
        "url": intent.url,
        "payment_id": intent.payment_id,
        "amount": intent.amount,
    }


@router.post("/payfast/compare-signature")
async def compare_signature(request: Request, auth=Depends(verify_token)):
    """Recompute the signature of a captured notification body for debugging."""
    try:
        pairs = parse_notification(await request.body())
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    received = next((value for key, value in pairs if key == "signature"), None)
    fields = [(k, v) for k, v in pairs if k != "signature"]
    result = build_signature(fields, settings.passphrase)

    return {
        "received": received,
        "expected": result.signature,
        "match": verify_signature(fields, received, settings.passphrase),
        "param_order": result.param_order,
        "param_string": result.param_string,
    }


@router.get("/users/{user_id}/balance")
def user_balance(user_id: str, auth=Depends(verify_token)):
    _require_owner(auth, user_id)
    store = LedgerStore(SessionLocal)
    try:
        balance = store.get_balance(user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user_id": user_id, "balance": str(balance)}


@router.get("/users/{user_id}/transactions")
def user_transactions(user_id: str, limit: int = 10, auth=Depends(verify_token)):
    _require_owner(auth, user_id)
    store = LedgerStore(SessionLocal)
    if store.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    return {
        "user_id": user_id,
        "transactions": [
            {
                "id": tx.id,
                "amount": f"{tx.amount:.2f}",
                "type": tx.type,
                "status": tx.status,
                "payment_id": tx.payment_id,
                "reference": tx.reference,
                "created_at": tx.created_at.isoformat() if tx.created_at else None,
            }
            for tx in store.recent_transactions(user_id, limit=min(max(limit, 1), 100))
        ],
    }


@router.get("/community/balance")
def community_balance():
    store = LedgerStore(SessionLocal)
    return {"balance": str(store.community_balance())}
