from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from cache import ProductCache
from config import Settings
from geo import Geocoder


@dataclass
class AppContext:
    """Everything a request handler needs that outlives the request."""
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker
    cache: ProductCache
    geocoder: Geocoder


# --- Dependencies ---
def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_settings(request: Request) -> Settings:
    return request.app.state.context.settings


def get_cache(request: Request) -> ProductCache:
    return request.app.state.context.cache


def get_geocoder(request: Request) -> Geocoder:
    return request.app.state.context.geocoder
