import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from bridge import Publisher, get_publisher
from logging_config import get_logger
from schemas.messages import PostMessageRequest, PostMessageResponse

logger = get_logger(__name__)

messages_router = APIRouter(tags=["messages"])

NEW_MESSAGE = "new-message"


@messages_router.post("", status_code=201, response_model=PostMessageResponse)
async def post_message(body: PostMessageRequest, request: Request, publisher: Publisher = Depends(get_publisher)):
    # Storage belongs to the messages service; here the message is only relayed to the match room.
    client_host = request.client.host if request.client else "unknown"
    message = {
        "id": uuid.uuid4().hex,
        "matchId": body.matchId,
        "text": body.text,
        "sender": body.sender,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    delivered = await publisher.publish(body.matchId, NEW_MESSAGE, message)
    logger.info(f"Message {message['id']} from {client_host} posted to match {body.matchId}, delivered to {delivered}")
    return PostMessageResponse(delivered=delivered, **message)
