from fastapi import APIRouter
from app.routers import delegations, escalation, escalation_settings, leave, workflow_rules

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(workflow_rules.router, tags=["Workflow Rules"])
api_router.include_router(escalation_settings.router, tags=["Escalation Settings"])
api_router.include_router(escalation.router, tags=["Escalation"])
api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(delegations.router, tags=["Delegations"])
