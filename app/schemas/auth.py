from pydantic import BaseModel
from typing import Optional


class TokenData(BaseModel):
    """Claims we rely on from identity-provider access tokens."""
    email: Optional[str] = None
    role: Optional[str] = None
    org_id: Optional[int] = None
