from fastapi import APIRouter
from cds.api.endpoints import alerts, recommendations

api_router = APIRouter()

# Register the endpoints
api_router.include_router(recommendations.router, tags=["Clinical Decision Support"])
api_router.include_router(alerts.router, tags=["Clinical Alerts"])
