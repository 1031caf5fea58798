from pydantic import BaseModel, EmailStr

from certgen.admins.schemas import AdminOut


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    admin: AdminOut
