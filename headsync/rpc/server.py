"""
JSON-RPC 2.0 server on FastAPI: method registry, single and batch dispatch,
and a Prometheus text endpoint at /metrics.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from headsync.common.errors import StorageError

logger = logging.getLogger(__name__)


PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
STORAGE_ERROR = -32000  # implementation-defined server error range


def _success_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _error_response(id: Any, code: int, message: str, data: Any = None) -> dict:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


class RPCServer:
    """JSON-RPC 2.0 server with method registration and dispatch."""

    def __init__(self) -> None:
        self.app = FastAPI(title="headsync JSON-RPC", docs_url=None, redoc_url=None)
        self._methods: dict[str, Callable] = {}
        self._metrics_provider: Optional[Callable[[], dict[str, float | int]]] = None
        self._setup_routes()

    def set_metrics_provider(self, provider: Callable[[], dict[str, float | int]]) -> None:
        """Set metrics provider for Prometheus text exposition."""
        self._metrics_provider = provider

    def _setup_routes(self) -> None:
        @self.app.get("/metrics")
        async def handle_metrics() -> PlainTextResponse:
            lines: list[str] = []
            if self._metrics_provider is not None:
                try:
                    metrics = self._metrics_provider()
                    for key, value in metrics.items():
                        lines.append(f"{key} {value}")
                except Exception as exc:
                    logger.debug("metrics provider error: %s", exc)
            return PlainTextResponse("\n".join(lines) + ("\n" if lines else ""))

        @self.app.post("/")
        async def handle_rpc(request: Request) -> JSONResponse:
            try:
                body = await request.json()
            except Exception:
                return JSONResponse(_error_response(None, PARSE_ERROR, "Parse error"))

            if isinstance(body, list):
                if not body:
                    return JSONResponse(_error_response(None, INVALID_REQUEST, "Empty batch"))
                results = []
                for item in body:
                    result = await self._handle_single(item)
                    if result is not None:
                        results.append(result)
                return JSONResponse(results if results else None)

            result = await self._handle_single(body)
            if result is None:
                return JSONResponse(content=None, status_code=204)
            return JSONResponse(result)

    async def _handle_single(self, request: Any) -> Optional[dict]:
        if not isinstance(request, dict):
            return _error_response(None, INVALID_REQUEST, "Invalid request")

        req_id = request.get("id")
        if request.get("jsonrpc") != "2.0":
            return _error_response(req_id, INVALID_REQUEST, "Invalid JSON-RPC version")
        method = request.get("method")
        if not isinstance(method, str):
            return _error_response(req_id, INVALID_REQUEST, "Invalid method")

        notification = "id" not in request
        response = await self._invoke(req_id, method, request.get("params", []))
        return None if notification else response

    async def _invoke(self, req_id: Any, method: str, params: Any) -> dict:
        handler = self._methods.get(method)
        if handler is None:
            return _error_response(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        if isinstance(params, list):
            args, kwargs = params, {}
        elif isinstance(params, dict):
            args, kwargs = [], params
        else:
            return _error_response(req_id, INVALID_PARAMS, "Invalid params")

        try:
            result = handler(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except TypeError as e:
            logger.warning("RPC TypeError in %s: %s", method, e)
            return _error_response(req_id, INVALID_PARAMS, str(e))
        except RPCError as e:
            return _error_response(req_id, e.code, e.message, e.data)
        except StorageError as e:
            logger.warning("RPC storage error in %s: %s", method, e)
            return _error_response(req_id, STORAGE_ERROR, str(e))
        except Exception as e:
            logger.exception("RPC internal error in %s", method)
            return _error_response(req_id, INTERNAL_ERROR, str(e))
        return _success_response(req_id, result)

    def method(self, name: str) -> Callable:
        def decorator(func: Callable) -> Callable:
            self._methods[name] = func
            return func

        return decorator


class RPCError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def hex_to_int(value: str) -> int:
    return int(value, 16)


def int_to_hex(value: int) -> str:
    return hex(value)


def bytes_to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def parse_height_param(value: int | str) -> int:
    """Accept a height as an int or a 0x-prefixed hex quantity."""
    if isinstance(value, bool):
        raise RPCError(INVALID_PARAMS, f"invalid height: {value!r}")
    if isinstance(value, int):
        height = value
    elif isinstance(value, str):
        try:
            height = hex_to_int(value) if value.lower().startswith("0x") else int(value)
        except ValueError:
            raise RPCError(INVALID_PARAMS, f"invalid height: {value!r}") from None
    else:
        raise RPCError(INVALID_PARAMS, f"invalid height: {value!r}")
    if height < 0:
        raise RPCError(INVALID_PARAMS, f"invalid height: {value!r}")
    return height
