"""
As this module will include FastAPI dependency, it should be manually imported and not from modules.api.
"""
import http
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from modules.logger import ProvisionedLogger

from .wrapper import ApiError, ApiErrorAdaptableException, ApiErrorResult, ErrorTree

logger = ProvisionedLogger().provision("FastAPI Error Handler")

def error_response(error: ApiError)->JSONResponse:
  return JSONResponse(content=ApiErrorResult.from_error(error).as_json(), status_code=error.status_code)

def api_error_exception_handler(request: Request, exc: ApiError):
  # Rejected edits are part of normal use; only server-side failures are errors.
  log = logger.warning if exc.is_client_error else logger.error
  log(f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.message}")
  return error_response(exc)

def adaptable_exception_handler(request: Request, exc: ApiErrorAdaptableException):
  return api_error_exception_handler(request, exc.to_api())

def default_exception_handler(request: Request, exc: Exception):
  logger.error(f"Unexpected error while handling {request.method} {request.url.path}: {exc}\n{''.join(traceback.format_exception(exc))}")
  return error_response(ApiError("An unexpected error has occurred in the server.", http.HTTPStatus.INTERNAL_SERVER_ERROR))

def validation_error_tree(exc: RequestValidationError)->ErrorTree:
  """Nests the messages by location, without the request section ("body", "query", ...). ``{"items": {0: {"w": "..."}}}``"""
  errors: ErrorTree = {}
  for error in exc.errors():
    location = error["loc"][1:] or error["loc"]
    node = errors
    for loc in location[:-1]:
      node = node.setdefault(loc, {})
    node[location[-1]] = str(error["msg"])
  return errors

async def validation_exception_handler(request: Request, exc: RequestValidationError):
  raw_errors = list(exc.errors())
  if any(error["type"] == "json_invalid" for error in raw_errors):
    return error_response(ApiError("Invalid JSON in body", http.HTTPStatus.BAD_REQUEST))

  message = str(raw_errors[0]["msg"]) if len(raw_errors) > 0 else "The request is invalid."
  return api_error_exception_handler(request, ApiError(
    message,
    http.HTTPStatus.UNPROCESSABLE_ENTITY,
    errors=validation_error_tree(exc),
  ))

def register_error_handlers(app: FastAPI):
  app.exception_handler(ApiError)(
    api_error_exception_handler
  )
  app.exception_handler(ApiErrorAdaptableException)(
    adaptable_exception_handler
  )
  app.exception_handler(RequestValidationError)(
    validation_exception_handler
  )
  app.exception_handler(Exception)(
    default_exception_handler
  )

__all__ = [
  "register_error_handlers"
]
