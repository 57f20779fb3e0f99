"""Agent portal endpoints."""

from fastapi import APIRouter, Depends, Response
from supabase import Client

from src.api.dependencies import get_current_user, get_supabase, require_agent
from src.api.models import AgentRegistrationResponse
from src.models.schemas import CurrentUser
from src.services import agents as agent_service
from src.services.agents import AgentDashboard

router = APIRouter(prefix="/agents", tags=["Agents"])


@router.post(
    "/register",
    response_model=AgentRegistrationResponse,
    status_code=201,
    summary="Register as an agent",
    description="Create the caller's agent record. Returns 200 with the existing record on repeat calls.",
)
async def register(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> AgentRegistrationResponse:
    agent, created = await agent_service.register_agent(supabase, user)
    if not created:
        response.status_code = 200
    return AgentRegistrationResponse(agent=agent, created=created)


@router.get(
    "/me/dashboard",
    response_model=AgentDashboard,
    summary="Agent dashboard",
    description="This week's registrations against the agent's weekly target.",
)
async def dashboard(
    user: CurrentUser = Depends(require_agent),
    supabase: Client = Depends(get_supabase),
) -> AgentDashboard:
    return await agent_service.agent_dashboard(supabase, user)
