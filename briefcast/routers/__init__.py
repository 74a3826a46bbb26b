"""
FastAPI routers.
"""
from briefcast.routers.health import router as health_router
from briefcast.routers.podcasts import router as podcasts_router

__all__ = ['health_router', 'podcasts_router']
