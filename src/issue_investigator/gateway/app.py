"""FastAPI application exposing the trigger and queue status endpoints."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import ExitStack, asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from issue_investigator import __version__
from issue_investigator.config import Settings
from issue_investigator.errors import InvalidTriggerError, StateStoreError
from issue_investigator.gateway.protocol import InvestigateRequest
from issue_investigator.orchestrator.controllers import trigger_service
from issue_investigator.orchestrator.services import TriggerService

logger = logging.getLogger(__name__)

REPO_ERROR = "Invalid repo format (expected owner/repo)"
ISSUE_ERROR = "Issue must be a positive integer"
MISSING_ERROR = "Missing repo or issue"


def create_app(settings: Settings, service: TriggerService | None = None) -> FastAPI:
    """Build the gateway; without ``service`` one is wired from ``settings`` on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        with ExitStack() as stack:
            if service is None:
                app.state.service = stack.enter_context(trigger_service(settings))
            else:
                app.state.service = service
            app.state.service.repository.init_state()
            logger.info("Gateway ready; state in %s", settings.state.data_dir)
            yield
            logger.info("Gateway shutting down")

    app = FastAPI(title="issue-investigator", version=__version__, lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, _validation_message(exc.errors()))

    @app.exception_handler(InvalidTriggerError)
    async def _invalid_trigger(_: Request, exc: InvalidTriggerError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(StateStoreError)
    async def _state_error(_: Request, exc: StateStoreError) -> JSONResponse:
        logger.error("State store failure: %s", exc)
        return _error(500, "State store unavailable")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error(404, "Not found")
        return _error(exc.status_code, str(exc.detail))

    @app.post("/investigate")
    def investigate(payload: InvestigateRequest, request: Request) -> dict[str, Any]:
        logger.info("Trigger received for %s#%s", payload.repo, payload.issue)
        result = request.app.state.service.trigger(payload.repo, payload.issue)
        return result.to_json()

    @app.get("/queue")
    def queue(request: Request) -> dict[str, Any]:
        return request.app.state.service.status().to_json()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(errors: Any) -> str:
    for error in errors:
        loc = tuple(error.get("loc", ()))
        if error.get("type") == "missing":
            return MISSING_ERROR
        if "repo" in loc:
            return REPO_ERROR
        if "issue" in loc:
            return ISSUE_ERROR
        if error.get("type") == "json_invalid":
            return "Invalid JSON body"
    return "Invalid request body"
