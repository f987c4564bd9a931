from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class MessageStatusEvent(BaseModel):
    """Delivery receipt posted by the messaging provider.

    Accepts both our field names and the provider's form field names.
    """

    message_id: str | None = Field(
        default=None, validation_alias=AliasChoices("messageId", "MessageSid", "message_id")
    )
    status: str | None = Field(
        default=None, validation_alias=AliasChoices("status", "MessageStatus")
    )
    to: str | None = Field(default=None, validation_alias=AliasChoices("to", "To"))
    error_code: str | int | None = Field(
        default=None, validation_alias=AliasChoices("errorCode", "ErrorCode", "error_code")
    )
    error_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("errorMessage", "ErrorMessage", "error_message"),
    )


class WebhookAck(BaseModel):
    received: bool = True
