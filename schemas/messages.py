from pydantic import BaseModel, Field
from typing import List, Optional

from constants import SENDER_MAX_LENGTH, TEXT_MAX_LENGTH


class Message(BaseModel):
    id: str
    sender: str = Field(max_length=SENDER_MAX_LENGTH)
    text: str = Field(max_length=TEXT_MAX_LENGTH)
    timestamp: int  # epoch milliseconds
    room_id: str
    # Stored plainly, redacted per reader by MessageLog.list_all
    auth_token: Optional[str] = None

class SendMessageRequest(BaseModel):
    sender: str = Field(default="", max_length=SENDER_MAX_LENGTH)
    text: str = Field(max_length=TEXT_MAX_LENGTH)

class SendMessageResponse(BaseModel):
    id: str

class MessagesResponse(BaseModel):
    messages: List[Message]
