import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_database
from dependencies import get_current_user_id
from errors import AuthError, ConflictError, NotFoundError, StoreError
from models import AuthResponse, LoginRequest, ProfileUpdate, RegisterRequest, UserOut, UserSettings, ok
from security import create_token, hash_password, verify_password
from services.stores import UserStore
from timeutils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(request: RegisterRequest, db: Database = Depends(get_database)):
    """注册并直接返回token"""
    users = UserStore(db)
    if users.find_by_email(request.email):
        raise ConflictError("Email already exists")

    new_user = {
        "email": request.email,
        "name": request.name,
        "password_hash": hash_password(request.password),
        "settings": UserSettings().to_doc(),
        "created_at": utc_now(),
    }
    try:
        user = users.insert(new_user)
    except StoreError as e:
        # 并发注册时由唯一索引兜底
        if isinstance(e.__cause__, DuplicateKeyError):
            raise ConflictError("Email already exists") from e
        raise

    user_id = str(user["_id"])
    logger.info(f"User {user_id} registered")
    return ok(AuthResponse(token=create_token(user_id), user=UserOut.from_doc(user)), "User registered")


@router.post("/login")
def login(request: LoginRequest, db: Database = Depends(get_database)):
    user = UserStore(db).find_by_email(request.email)
    if not user or not verify_password(request.password, user.get("password_hash", "")):
        raise AuthError("Invalid email or password")

    user_id = str(user["_id"])
    return ok(AuthResponse(token=create_token(user_id), user=UserOut.from_doc(user)), "Login successful")


@router.get("/me")
@router.get("/profile")
def me(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    user = UserStore(db).find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return ok({"user": UserOut.from_doc(user)})


@router.put("/profile")
def update_profile(
    request: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """更新昵称和设置，设置按字段合并"""
    users = UserStore(db)
    user = users.find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")

    fields = {"settings": request.merged_settings(UserSettings.from_doc(user.get("settings"))).to_doc()}
    if request.name:
        fields["name"] = request.name
    fields["updated_at"] = utc_now()

    user = users.update_by_id(user_id, fields)
    if not user:
        raise NotFoundError("User not found")
    logger.info(f"Profile updated for user {user_id}")
    return ok({"user": UserOut.from_doc(user)}, "Profile updated successfully")
