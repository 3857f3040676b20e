from fastapi import APIRouter, Depends

from rade_bot.src.core.app_state import get_notification_sink
from rade_bot.src.services.handoff_service import InMemoryNotificationSink

handoff_router = APIRouter()


@handoff_router.get("/queue/{organization}")
async def handoff_queue(organization: str, sink: InMemoryNotificationSink = Depends(get_notification_sink)):
    tickets = sink.queue(organization)
    return {"organization": organization, "total": len(tickets), "tickets": tickets}
