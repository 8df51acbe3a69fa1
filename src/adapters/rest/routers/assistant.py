"""Synchronous assistant endpoint."""

from fastapi import APIRouter, Depends

from factory import ServiceFactory
from adapters.rest.dependencies import get_assistant_service, get_factory
from adapters.rest.schemas import AskBody, AskOut
from application.services.assistant import AssistantService
from domain.models import ConversationContext, RequestOptions, Utterance

router = APIRouter(prefix="/assistant", tags=["assistant"])


@router.post("/ask", response_model=AskOut)
async def ask(
    body: AskBody,
    factory: ServiceFactory = Depends(get_factory),
    service: AssistantService = Depends(get_assistant_service),
):
    """Always answers 200 with a well-formed body; failures set success=false."""
    utterance = Utterance(
        text=body.utterance,
        options=RequestOptions(**body.options.model_dump()),
        session_id=body.session_id,
        context=ConversationContext.from_messages(
            [turn.model_dump() for turn in body.history],
            max_turns=factory.config.context_window_turns,
        ),
    )
    response = await service.handle(utterance)
    return AskOut(**response.to_dict())
