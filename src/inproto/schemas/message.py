"""Envelope Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field

from inproto.services.envelope import Box, Envelope


class BoxPayload(BaseModel):
    """One encrypted box as submitted by a client."""

    nonce: str = Field(..., description="URL-safe base64 24-byte nonce")
    box: str = Field(..., description="URL-safe base64 authenticated ciphertext")


class EnvelopeCreate(BaseModel):
    """Envelope submitted for relaying."""

    sender: str = Field(..., alias="from", description="Sender's encoded Ed25519 public key")
    boxes: list[BoxPayload]

    model_config = ConfigDict(populate_by_name=True)

    def to_envelope(self) -> Envelope:
        return Envelope(
            sender=self.sender,
            boxes=tuple(Box(nonce=item.nonce, box=item.box) for item in self.boxes),
        )


class EnvelopeResponse(BaseModel):
    """Stored envelope as returned to clients."""

    sender: str = Field(..., alias="from")
    boxes: list[BoxPayload]
    received_at: str | None = Field(None, alias="receivedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_envelope(cls, envelope: Envelope) -> "EnvelopeResponse":
        return cls(
            sender=envelope.sender,
            boxes=[BoxPayload(nonce=box.nonce, box=box.box) for box in envelope.boxes],
            received_at=envelope.received_at,
        )


class MessageSentResponse(BaseModel):
    sent: int = Field(..., description="Endpoints the envelope was pushed to")
    pruned: int = Field(0, description="Endpoints removed because the provider reported them gone")
    failed: int = Field(0, description="Endpoints that failed transiently and were kept")
    received_at: str | None = Field(None, alias="receivedAt")

    model_config = ConfigDict(populate_by_name=True)


class MessagesResponse(BaseModel):
    messages: list[EnvelopeResponse]
