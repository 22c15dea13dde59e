from .allocations_api import router as allocations_api_router
from .asset_requests_api import router as asset_requests_api_router
from .assets_api import router as assets_api_router
from .dashboard_api import router as dashboard_api_router
from .maintenance_api import router as maintenance_api_router
from .notifications_api import router as notifications_api_router
from .profiles_api import router as profiles_api_router
from .tickets_api import router as tickets_api_router
from .transfers_api import router as transfers_api_router

ALL_ROUTERS = (
    assets_api_router,
    profiles_api_router,
    allocations_api_router,
    transfers_api_router,
    maintenance_api_router,
    tickets_api_router,
    asset_requests_api_router,
    dashboard_api_router,
    notifications_api_router,
)
