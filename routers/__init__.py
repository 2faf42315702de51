# Encore Routers Module
# Exports all modular API routers

from routers.campaigns import router as campaigns_router
from routers.investments import router as investments_router
from routers.fund_unlock import router as fund_unlock_router
from routers.admin import router as admin_router
from routers.revenue import router as revenue_router
from routers.webhooks import router as webhooks_router

__all__ = [
    'campaigns_router',
    'investments_router',
    'fund_unlock_router',
    'admin_router',
    'revenue_router',
    'webhooks_router',
]
