"""Direct message routes and the conversation stream."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from core.config import Settings
from core.container import container
from core.database import Database
from core.errors import NotFoundError, ValidationError
from core.logging import get_logger
from services.sse import polling_stream, sse_response

logger = get_logger(__name__)
router = APIRouter(prefix="/api/messages", tags=["messages"])

CONVERSATION_LIMIT = 50


class MessageCreateRequest(BaseModel):
    receiver_id: int = Field(alias="receiverId")
    content: str = Field(min_length=1, max_length=10000)


def require_other_user(other_user_id: Optional[int]) -> int:
    if other_user_id is None:
        raise ValidationError("Missing otherUserId parameter")
    return other_user_id


@router.get("")
async def get_conversation(
    request: Request,
    other_user_id: Optional[int] = Query(default=None, alias="otherUserId"),
    database: Database = Depends(lambda: container.database())
):
    other = require_other_user(other_user_id)
    return await database.conversation(request.state.user_id, other, limit=CONVERSATION_LIMIT)


@router.post("", status_code=201)
async def send_message(
    body: MessageCreateRequest,
    request: Request,
    database: Database = Depends(lambda: container.database())
):
    message = await database.create_message(request.state.user_id, body.receiver_id, body.content)
    if message is None:
        raise NotFoundError("Recipient not found")
    return message


@router.get("/stream")
async def conversation_stream(
    request: Request,
    other_user_id: Optional[int] = Query(default=None, alias="otherUserId"),
    database: Database = Depends(lambda: container.database()),
    settings: Settings = Depends(lambda: container.settings())
):
    """Server-Sent Events stream re-sending the conversation on a timer."""
    other = require_other_user(other_user_id)
    user_id = request.state.user_id

    async def query():
        return await database.conversation(user_id, other, limit=CONVERSATION_LIMIT)

    return sse_response(polling_stream(
        request, query,
        interval=settings.message_stream_interval,
        update_type="message_update",
        key="messages",
        name="messages",
    ))
