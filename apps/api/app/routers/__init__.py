from .routes_interactions import router as interactions_router
from .routes_profile import router as profile_router
from .routes_recommendations import router as recommendations_router
from .routes_search import router as search_router
from .routes_index import router as index_router

all_routers = [
    interactions_router,
    profile_router,
    recommendations_router,
    search_router,
    index_router,
]
