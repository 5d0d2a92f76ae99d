from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime
from typing import Optional


class DistributorCredential(Document):
    """
    Distributor portal login.
    Password is stored base64-encoded, never in plain text.
    """
    distributor: Indexed(str)
    login_url: str
    username: str
    password_encrypted: str

    is_active: bool = True
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_error: Optional[str] = None
    failure_count: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "distributor_credentials"
