"""Trusted agent definitions: list and register."""

from fastapi import APIRouter, Depends, HTTPException, status

from factory import ServiceFactory
from adapters.rest.dependencies import get_factory
from adapters.rest.schemas import AgentDefinitionBody, AgentOut
from domain.exceptions import AgentLoadError, CapabilityError
from domain.models import AgentDefinition

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentOut])
async def list_agents(factory: ServiceFactory = Depends(get_factory)):
    definitions = await factory.agent_definitions.list_all()
    return [AgentOut(**d.to_dict()) for d in definitions]


@router.post("", response_model=AgentOut, status_code=status.HTTP_201_CREATED)
async def register_agent(
    body: AgentDefinitionBody,
    factory: ServiceFactory = Depends(get_factory),
):
    definition = AgentDefinition(
        name=body.name,
        entrypoint=body.entrypoint,
        description=body.description,
        input_schema=body.input_schema,
        declared_capabilities=tuple(body.declared_capabilities),
        version=body.version,
    )
    try:
        saved = await factory.register_agent_definition(definition)
    except CapabilityError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except AgentLoadError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return AgentOut(**saved.to_dict())
