"""
Traktr Chat - Schemas.

Messages posted to a company job's thread by the owner and assigned crew.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ChatIntent = Literal["progress", "issue", "materials", "other"]
ChatRole = Literal["boss", "employee"]


class ChatMessage(BaseModel):
    """A normalized job chat message."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    author_label: str = Field(default="Member", alias="authorLabel")
    role: ChatRole = "employee"
    text: str = ""
    created_at: str = Field(..., alias="createdAt", description="ISO-8601, UTC")
    intent: ChatIntent = "other"
    image_uri: str | None = Field(default=None, alias="imageUri")
    sender_uid: str | None = Field(default=None, alias="senderUid")


class ChatMessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(default="", max_length=2000)
    intent: ChatIntent | None = Field(default=None, description="Classified from the text when omitted")
    image_uri: str | None = Field(default=None, alias="imageUri", description="Uploaded photo locator")
