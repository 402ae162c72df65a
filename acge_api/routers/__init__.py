from acge_api.routers.dossiers import dossier_router
from acge_api.routers.quitus import quitus_router

__all__ = ["dossier_router", "quitus_router"]
