from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.auth.navigation import NavigationAction


class NavigationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page: str = Field(default="", max_length=100)


class NavigationOut(BaseModel):
    action: NavigationAction
    page: str
    redirect_to: Optional[str] = None
    logout: bool = False


class AccessiblePagesOut(BaseModel):
    role: str
    pages: List[str]
