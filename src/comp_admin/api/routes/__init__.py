"""API routes."""

from comp_admin.api.routes.currencies import router as currencies_router
from comp_admin.api.routes.deal_team_spiffs import router as deal_team_spiffs_router
from comp_admin.api.routes.employees import router as employees_router
from comp_admin.api.routes.health import router as health_router
from comp_admin.api.routes.payout_runs import router as payout_runs_router
from comp_admin.api.routes.plans import router as plans_router
from comp_admin.api.routes.roles import router as roles_router
from comp_admin.api.routes.targets import router as targets_router

__all__ = [
    "currencies_router",
    "deal_team_spiffs_router",
    "employees_router",
    "health_router",
    "payout_runs_router",
    "plans_router",
    "roles_router",
    "targets_router",
]
