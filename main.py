import asyncio
from contextlib import asynccontextmanager
import logging
import os
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware

from modules.api.wrapper import ApiErrorResult
from modules.api.exceptions import register_error_handlers
from modules.config import EditorConfig
from modules.dashboard.service import DashboardEditorService
from modules.logger import ProvisionedLogger
import routes

config = EditorConfig.load()

is_app = os.getenv("APP")
ProvisionedLogger().configure(
  level=logging.WARNING if is_app else logging.DEBUG,
  terminal=True,
  file=config.logging.file_settings(),
)

@asynccontextmanager
async def lifespan(app):
  service = DashboardEditorService.create(config)
  service.start()
  try:
    # Exposed to every request (mounted apps included) as request.state.editor_service
    yield dict(editor_service=service)
  except asyncio.exceptions.CancelledError:
    pass
  finally:
    await service.shutdown()

app = FastAPI(lifespan=lifespan)

app.add_middleware(
  CORSMiddleware,
  allow_origins=["*"],
  allow_methods=["*"],
  allow_headers=["*"]
)

api_app = FastAPI(responses={
    400: dict(model=ApiErrorResult),
    403: dict(model=ApiErrorResult),
    404: dict(model=ApiErrorResult),
    409: dict(model=ApiErrorResult),
    422: dict(model=ApiErrorResult),
    500: dict(model=ApiErrorResult),
    502: dict(model=ApiErrorResult),
    504: dict(model=ApiErrorResult),
  },
  default_response_class=ORJSONResponse
)
api_app.include_router(routes.dashboard.router, prefix="/dashboards/{dashboard_id}")
api_app.include_router(routes.general.router, prefix="")
register_error_handlers(api_app)

app.mount('/api', api_app)
