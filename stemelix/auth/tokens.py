# stemelix/auth/tokens.py
from datetime import datetime, timedelta

from jose import jwt, JWTError

from stemelix import config
from stemelix.errors import Unauthorized


def create_access_token(user_id: str, role: str, email: str = None) -> str:
    expires = datetime.utcnow() + timedelta(hours=config.ACCESS_TOKEN_TTL_HOURS)
    claims = {"sub": user_id, "role": role, "exp": expires}
    if email:
        claims["email"] = email
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        # Decodes and checks expiration/signature
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or Expired Token")
