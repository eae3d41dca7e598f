from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from stemelix.auth.guard import CallerContext, get_current_user
from stemelix.database import get_db
from stemelix.users import service

router = APIRouter(prefix="/auth", tags=["Users"])


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/register", status_code=201)
async def register(data: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    result = await service.register_user(db, data.name, data.email, data.password)
    return {"success": True, "message": "User registered successfully", **result}


@router.post("/login")
async def login(data: LoginRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    result = await service.authenticate(db, data.email, data.password)
    return {"success": True, **result}


@router.get("/me")
async def me(
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    """Profile with enrollment record"""
    return await service.get_profile(db, caller.user_id)
