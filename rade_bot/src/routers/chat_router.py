from fastapi import APIRouter, Depends

from rade_bot.src.core.app_state import get_chat_service
from rade_bot.src.models.chat_models import ChatRequest, ChatResponse
from rade_bot.src.services.chat_service import ChatService

chat_router = APIRouter()


@chat_router.post("/menu", response_model=ChatResponse)
async def menu_chat(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    return await chat_service.menu_turn(request)


@chat_router.post("/open", response_model=ChatResponse)
async def open_chat(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    return await chat_service.open_turn(request)


@chat_router.post("/hybrid", response_model=ChatResponse)
async def hybrid_chat(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    return await chat_service.hybrid_turn(request)
