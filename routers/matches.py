from fastapi import APIRouter, Depends

from bridge import Publisher, get_publisher
from logging_config import get_logger
from schemas.messages import MatchEventRequest, MatchEventResponse

logger = get_logger(__name__)

matches_router = APIRouter(tags=["matches"])


@matches_router.post("/{match_id}/events", response_model=MatchEventResponse)
async def publish_match_event(match_id: str, body: MatchEventRequest, publisher: Publisher = Depends(get_publisher)):
    """Push an arbitrary event (e.g. "offer-updated", "match-status") to everyone watching a match."""
    delivered = await publisher.publish(match_id, body.event, body.data)
    logger.info(f"Event {body.event} published to match {match_id}, delivered to {delivered}")
    return MatchEventResponse(matchId=match_id, event=body.event, delivered=delivered)
