"""Push subscription Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChallengeResponse(BaseModel):
    """Challenge issued to an identity before it may bind an endpoint."""

    challenge: str = Field(..., description="128-bit random token, hex encoded")
    issued_at: int = Field(..., alias="issuedAt", description="Issue time in epoch milliseconds")

    model_config = ConfigDict(populate_by_name=True)


class SubscribeRequest(BaseModel):
    """Request binding a browser push subscription to a proven identity.

    Fields are optional here so that the relay can answer missing values
    with its own validation errors.
    """

    subscription: dict[str, Any] | None = Field(
        None, description="PushSubscription JSON with endpoint and keys"
    )
    user_pubkey: str | None = Field(None, alias="userPubKey")
    target_pubkey: str | None = Field(None, alias="targetPubKey")
    challenge: str | None = Field(None, description="Token from /subscribe/challenge")
    signature: str | None = Field(None, description="Signed blob over timestamp ∥ challenge")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def push_subscription(self) -> dict[str, Any] | None:
        """Return the nested subscription, or the body itself when sent flat."""
        if self.subscription is not None:
            return self.subscription
        extra = self.model_extra or {}
        if "endpoint" in extra:
            return dict(extra)
        return None


class SubscribeResponse(BaseModel):
    ok: bool = True
    created: bool = Field(..., description="True if a new binding was stored")


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None


class UnsubscribeResponse(BaseModel):
    ok: bool = True
    removed: bool = Field(..., description="False if no binding existed for the endpoint")


class VapidKeyResponse(BaseModel):
    key: str = Field(..., description="URL-safe base64 VAPID application server key")


class PeersResponse(BaseModel):
    peers: list[str]
