"""Authentication schemas."""
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class UserIdentity(BaseModel):
    """The signed-in user as returned by the backend."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    name: str
    email: str
    student_id: Optional[str] = Field(None, validation_alias=AliasChoices("student_id", "studentID"))
    department: Optional[str] = None
    department_name: Optional[str] = Field(None, validation_alias=AliasChoices("department_name", "departmentName"))
    role: Optional[str] = None

    def to_storage(self) -> str:
        """Serialize for the local state database."""
        return self.model_dump_json(by_alias=False)


class LoginRequest(BaseModel):
    """Body of POST /auth/login. `email` carries whatever identifier the user typed: an email or a student ID."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RegisterProfile(BaseModel):
    """Registration form data."""
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)
    department: Optional[str] = None

    def to_backend(self) -> dict:
        """Map form fields onto the backend's expected register payload."""
        return {
            "name": f"{self.first_name} {self.last_name}".strip(),
            "email": self.email,
            "password": self.password,
            "role": "student",
            "studentID": self.student_id,
            "department": self.department or "General",
        }


class AuthResponse(BaseModel):
    """Body returned by login and register."""
    model_config = ConfigDict(extra="ignore")

    token: str = Field(..., min_length=1)
    user: UserIdentity
