"""Pydantic response models for the room HTTP API.

Every response carries ``success``; failures are rendered by the
session error handler as ``{"success": false, "error": message}``.
"""
from typing import List

from pydantic import BaseModel, Field

from .models import Message, Room


class JoinCheck(BaseModel):
    """Result of the join pre-check for an existing room."""
    roomCode: str = Field(..., description="Normalized room code")
    participantCount: int = Field(..., description="Current member count")
    createdAt: float = Field(..., description="Room creation timestamp")
    userEmail: str = Field(..., description="Email the client will join with")
    canJoin: bool = Field(default=True, description="Room has a free seat")


class JoinCheckResponse(BaseModel):
    success: bool = True
    data: JoinCheck
    message: str = "Room found. Ready to join."


class RoomInfo(BaseModel):
    code: str
    participantCount: int
    createdAt: float
    isActive: bool
    maxParticipants: int
    messageCount: int

    @classmethod
    def of(cls, room: Room) -> "RoomInfo":
        return cls(**room.get_info())


class RoomInfoResponse(BaseModel):
    success: bool = True
    data: RoomInfo


class ActiveRoom(BaseModel):
    code: str
    participantCount: int
    createdAt: float
    isActive: bool = True


class ActiveRoomsResponse(BaseModel):
    success: bool = True
    data: List[ActiveRoom]
    total: int


class RoomStats(BaseModel):
    totalRooms: int
    activeRooms: int
    totalParticipants: int
    timestamp: float
    status: str = "operational"


class RoomStatsResponse(BaseModel):
    success: bool = True
    data: RoomStats


class RoomMessagesResponse(BaseModel):
    """Group message history of a room, oldest first."""
    success: bool = True
    data: List[Message]
    total: int


class ApiHealthResponse(BaseModel):
    status: str = "OK"
    timestamp: float
    service: str = "Huddle API"
    version: str
