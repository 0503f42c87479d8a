from services.status_api.routes import ApiResponse, StatusApiRoutes
from services.status_api.server import StatusApiServer

__all__ = ["ApiResponse", "StatusApiRoutes", "StatusApiServer"]
