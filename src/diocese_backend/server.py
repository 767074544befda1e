import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diocese_backend.api.auth import auth_router
from diocese_backend.api.chats import chats_router
from diocese_backend.api.dashboards import dashboard_router
from diocese_backend.api.organizations import diocese_router, testing_center_router, user_router
from diocese_backend.api.queries import query_router
from diocese_backend.api.schema import schema_router
from diocese_backend.api.system import debug_router, settings_router
from diocese_backend.middleware import RouteGuardMiddleware
from diocese_backend.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting diocese backend in {settings.DEBUG_MODE} mode")
    if settings.ENFORCE_ROUTE_ROLES:
        logger.info("Route role enforcement is enabled")
    yield

app = FastAPI(lifespan=lifespan)

origins = [
    "*"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-should-update-chats"],
)

app.add_middleware(RouteGuardMiddleware)

app.include_router(
    auth_router,
    prefix="/auth",
    tags=["auth"]
)

app.include_router(
    dashboard_router,
    tags=["dashboards"]
)

app.include_router(
    diocese_router,
    prefix="/dioceses",
    tags=["dioceses"]
)

app.include_router(
    testing_center_router,
    prefix="/testing-centers",
    tags=["testing centers"]
)

app.include_router(
    user_router,
    prefix="/users",
    tags=["users"]
)

app.include_router(
    chats_router,
    prefix="/chats",
    tags=["chats"]
)

app.include_router(
    query_router,
    tags=["chat", "sql"]
)

app.include_router(
    schema_router,
    prefix="/schema",
    tags=["schema"]
)

app.include_router(
    settings_router,
    prefix="/settings",
    tags=["settings"]
)

if settings.DEBUG_MODE == "development":
    app.include_router(
        debug_router,
        prefix="/debug",
        tags=["debug"]
    )
