from pipewatch.src.routes.health import router as health_router
from pipewatch.src.routes.live import router as live_router
from pipewatch.src.routes.pipelines import router as pipelines_router
from pipewatch.src.routes.subscriptions import router as subscriptions_router
from pipewatch.src.routes.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "live_router",
    "pipelines_router",
    "subscriptions_router",
    "webhooks_router",
]
