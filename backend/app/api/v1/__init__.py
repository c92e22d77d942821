from . import quotas_router

__all__ = [
    "quotas_router",
]
