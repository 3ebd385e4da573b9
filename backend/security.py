from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from config import BCRYPT_ROUNDS, JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_HOURS
from errors import AuthError


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # 超过72字节的密码或损坏的哈希
        return False


def create_token(user_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
    payload = {
        "user_id": user_id,
        "type": "access",
        "exp": expire
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> str:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Access token expired", data={"code": "TOKEN_EXPIRED"})
    except JWTError:
        raise AuthError("Invalid access token", status_code=403)
    user_id = payload.get("user_id")
    if not user_id or payload.get("type") != "access":
        raise AuthError("Invalid access token", status_code=403)
    return user_id
