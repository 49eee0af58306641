"""FastAPI app factory and the in-process uvicorn runner."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homenvr.api.errors import register_exception_handlers
from homenvr.api.routes import register_routes

if TYPE_CHECKING:
    from homenvr.app import Application

logger = logging.getLogger(__name__)

_STARTUP_POLL_S = 0.01


def create_contract_app() -> FastAPI:
    """Routes and error handlers only, with no engine attached."""
    app = FastAPI(title="HomeNVR API", version="1.0.0")
    register_exception_handlers(app)
    register_routes(app)
    return app


def _cors_options(origins: list[str]) -> dict[str, Any]:
    # Browsers reject credentials together with a wildcard origin.
    return {
        "allow_origins": origins,
        "allow_credentials": "*" not in origins,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


def create_app(nvr: Application) -> FastAPI:
    """API bound to a running engine; routes reach it via `app.state.homenvr`."""
    app = create_contract_app()
    app.state.homenvr = nvr
    app.add_middleware(CORSMiddleware, **_cors_options(nvr.config.server.cors_origins))
    return app


class APIServer:
    """uvicorn served as a task on the engine's event loop.

    Signal handling stays with the Application, so uvicorn's own handlers are
    disabled.
    """

    def __init__(
        self,
        app: FastAPI,
        host: str,
        port: int,
        *,
        startup_timeout_s: float = 5.0,
        shutdown_timeout_s: float = 5.0,
    ) -> None:
        self._address = f"{host}:{port}"
        self._uvicorn_config = uvicorn.Config(
            app,
            host=host,
            port=port,
            loop="asyncio",
            log_level="info",
            access_log=False,
        )
        self._startup_timeout_s = startup_timeout_s
        self._shutdown_timeout_s = shutdown_timeout_s
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def start(self) -> None:
        """Serve in the background; returns once the socket is bound."""
        if self._serve_task is not None:
            return
        server = uvicorn.Server(self._uvicorn_config)
        server.install_signal_handlers = False  # type: ignore[attr-defined]
        task = asyncio.create_task(server.serve(), name="api-server")
        self._server, self._serve_task = server, task

        try:
            await asyncio.wait_for(self._until_bound(server, task), self._startup_timeout_s)
        except BaseException as exc:
            await self._abort(server, task)
            if isinstance(exc, asyncio.TimeoutError):
                raise TimeoutError(f"API server did not bind {self._address} in time") from exc
            raise
        logger.info("API server listening on http://%s", self._address)

    async def stop(self) -> None:
        server, task = self._server, self._serve_task
        if server is None or task is None:
            return
        server.should_exit = True
        try:
            await asyncio.wait_for(task, self._shutdown_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("API server did not stop in %.1fs, cancelling", self._shutdown_timeout_s)
            task.cancel()
        except Exception as exc:
            logger.error("API server stopped with error: %s", exc, exc_info=True)
        self._server = self._serve_task = None
        logger.info("API server stopped")

    @staticmethod
    async def _until_bound(server: uvicorn.Server, task: asyncio.Task[None]) -> None:
        while not server.started:
            if task.done():
                # Surfaces bind errors raised inside serve().
                task.result()
                raise RuntimeError("API server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_S)

    async def _abort(self, server: uvicorn.Server, task: asyncio.Task[None]) -> None:
        server.should_exit = True
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self._server = self._serve_task = None
