import hashlib
import hmac
import logging
import re
import secrets
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from stemelix.auth.guard import STUDENT_ROLE
from stemelix.auth.tokens import create_access_token
from stemelix.database import generate_id, serialize_mongo
from stemelix.errors import Conflict, NotFound, Unauthorized, ValidationError, require_fields

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 8
PBKDF2_ITERATIONS = 260000

PUBLIC_FIELDS = {"password_hash": 0}


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256, stored as iterations$salt$digest"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS).hex()
    return f"{PBKDF2_ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        iterations, salt, digest = password_hash.split("$")
    except (AttributeError, ValueError):
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


def public_user(user: dict) -> dict:
    user = serialize_mongo(user)
    user.pop("password_hash", None)
    return user


async def register_user(db: AsyncIOMotorDatabase, name: str, email: str, password: str) -> dict:
    require_fields({"name": name, "email": email, "password": password})
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email! Please enter a valid email.")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")

    now = datetime.utcnow()
    user = {
        "user_id": generate_id("USR"),
        "name": name.strip(),
        "email": email,
        "password_hash": hash_password(password),
        "role": STUDENT_ROLE,
        "courses_enrolled": [],
        "total_courses_enrolled": 0,
        "courses_completed": 0,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise Conflict("User already exists")

    logger.info("User registered: %s", user["user_id"])
    return {
        "token": create_access_token(user["user_id"], user["role"], email),
        "user": public_user(user),
    }


async def authenticate(db: AsyncIOMotorDatabase, email: str, password: str) -> dict:
    require_fields({"email": email, "password": password})
    user = await db.users.find_one({"email": email.strip().lower()})
    if not user or not verify_password(password, user.get("password_hash")):
        raise Unauthorized("Invalid email or password")
    return {
        "token": create_access_token(user["user_id"], user.get("role", STUDENT_ROLE), user["email"]),
        "user": public_user(user),
    }


async def get_profile(db: AsyncIOMotorDatabase, user_id: str) -> dict:
    user = await db.users.find_one({"user_id": user_id}, PUBLIC_FIELDS)
    if not user:
        raise NotFound("User not found", user_id=user_id)
    return public_user(user)
