"""
Sham Dispatcher

FastAPI application that sits between the HTTP listener and the expectation
engine. Each request is routed by the Coordinator, the chosen handler runs
outside of it, and the outcome is reported back.

Features:
- Catch-all route for every HTTP method, including extension methods
- Sync handlers run on the threadpool, async handlers on the event loop
- Handler failures answered with HTTP 500 and deferred to teardown
- Routing violations answered with HTTP 500 and queued as session errors
"""

import asyncio
import inspect
import json
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.types import Receive, Scope, Send

from ..engine import CALLED, Coordinator, Dispatch, Raised
from ..errors import CoordinatorClosedError


@dataclass
class ShamRequest:
    """
    Request as seen by a Sham handler.

    The body is read once up front; ``raw`` gives access to the underlying
    Starlette request for anything else (cookies, client address, ...).
    """

    method: str
    path: str
    url: str = ""
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw: Optional[Request] = None

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    async def from_request(cls, request: Request) -> 'ShamRequest':
        return cls(
            method=request.method,
            path=request.url.path,
            url=str(request.url),
            query=dict(request.query_params),
            headers=dict(request.headers),
            body=await request.body(),
            raw=request
        )


def to_response(result: Any) -> Response:
    """
    Convert a handler's return value into a Response.

    Accepted values:
    - Response: sent unmodified
    - None: empty 200
    - str / bytes: 200 text/plain
    - dict / list: 200 JSON
    - (status, body) or (status, body, headers)

    Raises:
        TypeError: unsupported return value
    """
    if isinstance(result, Response):
        return result

    if result is None:
        return Response(status_code=200)

    if isinstance(result, tuple) and len(result) in (2, 3):
        status, body = result[0], result[1]
        headers = result[2] if len(result) == 3 else None
        response = to_response(body)
        response.status_code = int(status)
        if headers:
            response.headers.update(headers)
        return response

    if isinstance(result, (dict, list)):
        return JSONResponse(content=result)

    if isinstance(result, (str, bytes)):
        return PlainTextResponse(content=result)

    raise TypeError(f"Unsupported handler return value: {type(result).__name__}")


def describe_failure(failure: BaseException, category: str) -> str:
    """Diagnostic body sent to the client when a handler fails."""
    if category == "assertion":
        return "".join(traceback.format_exception_only(type(failure), failure)).strip()
    return "".join(traceback.format_exception(type(failure), failure, failure.__traceback__))


class Dispatcher:
    """
    Connects a FastAPI app to a Coordinator.

    Example:
        coordinator = Coordinator()
        app = Dispatcher(coordinator).app
        client = TestClient(app)
    """

    def __init__(self, coordinator: Coordinator, logger: Optional[logging.Logger] = None):
        self.coordinator = coordinator
        self.logger = logger or logging.getLogger("sham.server")
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with the catch-all route."""
        app = FastAPI(
            title="Sham",
            description="Mock HTTP server for testing HTTP clients",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        # Plain ASGI endpoints get no method filter: PROPFIND and other
        # extension methods reach the engine instead of a 405
        app.add_route("/{path:path}", _CatchAll(self), include_in_schema=False)

        return app

    async def _ask(self, operation: str, *args: Any) -> Any:
        return await asyncio.wrap_future(self.coordinator.submit(operation, *args))

    async def handle(self, request: Request) -> Response:
        """
        Handle one incoming request.

        Args:
            request: Starlette request

        Returns:
            The handler's response, or a 500 describing why there is none
        """
        method = request.method
        path = request.url.path

        self.logger.debug(f"Incoming: {method} {path}")

        try:
            decision = await self._ask('match', method, path)
        except CoordinatorClosedError as e:
            self.logger.warning(f"Request after teardown: {method} {path}")
            return PlainTextResponse(str(e), status_code=500)

        if not isinstance(decision, Dispatch):
            self.logger.warning(decision.message)
            await self._report('record_session_error', decision.message)
            return PlainTextResponse(decision.message, status_code=500)

        try:
            sham_request = await ShamRequest.from_request(request)
            response = to_response(await self._invoke(decision.handler, sham_request))
        except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
            raise
        except AssertionError as e:
            return await self._failed(decision, e, "assertion")
        except Exception as e:
            return await self._failed(decision, e, "exception")
        except BaseException as e:
            # Test-framework outcomes such as pytest.fail()
            return await self._failed(decision, e, "assertion")

        await self._report('report_outcome', decision.identity, CALLED)
        return response

    async def _invoke(self, handler: Callable[[ShamRequest], Any], sham_request: ShamRequest) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(sham_request)

        result = await run_in_threadpool(handler, sham_request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _failed(self, decision: Dispatch, failure: BaseException, category: str) -> Response:
        self.logger.info(
            f"Handler {decision.description} raised {type(failure).__name__}: {failure}"
        )
        await self._report('report_outcome', decision.identity, Raised(failure, category))
        return PlainTextResponse(describe_failure(failure, category), status_code=500)

    async def _report(self, operation: str, *args: Any) -> None:
        try:
            await self._ask(operation, *args)
        except CoordinatorClosedError:
            self.logger.warning(f"Dropped {operation} after teardown")


class _CatchAll:
    """ASGI endpoint handing every request to a Dispatcher."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await self.dispatcher.handle(Request(scope, receive))
        await response(scope, receive, send)


def create_app(coordinator: Coordinator) -> FastAPI:
    """Convenience function returning the FastAPI app for a coordinator."""
    return Dispatcher(coordinator).app
