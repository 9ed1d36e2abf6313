from .auth import router as auth_router
from .bookmakers import router as bookmakers_router
from .leagues import router as leagues_router
from .parlays import router as parlays_router
from .sports import router as sports_router
from .subscriptions import router as subscriptions_router
from .tips import router as tips_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "bookmakers_router",
    "leagues_router",
    "parlays_router",
    "sports_router",
    "subscriptions_router",
    "tips_router",
    "users_router",
]
