from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class TodoStatus(str, Enum):
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Visibility(str, Enum):
    PRIVATE = "PRIVATE"
    ORG = "ORG"
    SPECIFIC = "SPECIFIC"



class UserSummary(BaseModel):
    id: UUID
    name: Optional[str] = None
    email: str

    model_config = {"from_attributes": True}


class SuccessResponse(BaseModel):
    success: bool = True
