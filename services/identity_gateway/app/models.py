"""Pydantic schemas exposed by the identity gateway."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class NormalizedIdentity(BaseModel):
    """Provider independent view of a verified account."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    username: str
    display_name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_url: str
    verified: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthorizationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str
    authorization_url: str = Field(..., alias="authorizationUrl")
    state: str


__all__ = ["AuthorizationResponse", "NormalizedIdentity"]
