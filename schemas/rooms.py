from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    room_id: str

class JoinRoomResponse(BaseModel):
    room_id: str
    already_member: bool

class RoomTTLResponse(BaseModel):
    ttl: int
