from fastapi import Header, HTTPException
from jose import JWTError, jwt

from savings_gateway.config import settings


def verify_token(authorization: str = Header(...)):
    """Check a Bearer JWT signed with the project secret and return its claims."""
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
