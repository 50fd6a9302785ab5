import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timedchess.api.routes import router as api_router
from timedchess.core.config import get_settings
from timedchess.realtime.socket_server import build_socket_app

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

api_app = FastAPI(title=settings.app_name, debug=settings.debug)
api_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
api_app.include_router(api_router, prefix=settings.api_prefix)


app = build_socket_app(api_app)
