"""
MCP (Model Context Protocol) server over stdio.

Speaks JSON-RPC 2.0 with one message per line. Content-Length framed input is
accepted as well. Every request is handled in its own task, so a long
``anchor deploy`` does not hold up a ``ping``.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from anchor_mcp import __version__
from anchor_mcp.config import AnchorMCPConfig, settings
from anchor_mcp.context import build_context
from anchor_mcp.tools.registry import ToolNotFoundError, ToolRegistry, initialize_registry

logger = logging.getLogger("anchor_mcp.server")

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class JSONRPCError(Exception):
    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


@dataclass
class JSONRPCRequest:
    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[Union[str, int]] = None
    jsonrpc: str = "2.0"

    @property
    def is_notification(self) -> bool:
        return self.id is None

    @classmethod
    def from_dict(cls, data: Any) -> "JSONRPCRequest":
        if not isinstance(data, dict) or data.get("jsonrpc") != "2.0" or not isinstance(data.get("method"), str):
            raise JSONRPCError(INVALID_REQUEST, "Invalid Request")
        params = data.get("params")
        if params is not None and not isinstance(params, dict):
            raise JSONRPCError(INVALID_PARAMS, "params must be an object")
        return cls(method=data["method"], params=params, id=data.get("id"))


@dataclass
class JSONRPCResponse:
    id: Optional[Union[str, int]]
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    jsonrpc: str = "2.0"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data

    @classmethod
    def failure(cls, id, code: int, message: str, data: Any = None) -> "JSONRPCResponse":
        error = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return cls(id=id, error=error)


Writer = Callable[[bytes], Awaitable[None]]


class MCPServer:
    """Dispatches MCP requests to a ToolRegistry."""

    def __init__(self, registry: ToolRegistry, name: str = "solana-anchor", version: str = __version__):
        self.registry = registry
        self.name = name
        self.version = version
        self._write_lock = asyncio.Lock()
        self._inflight: Set[asyncio.Task] = set()

    # -----------------------------------------------------------------
    # Method handlers
    # -----------------------------------------------------------------

    async def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        client = params.get("clientInfo", {})
        logger.info(f"Client connected: {client.get('name', 'unknown')} {client.get('version', '')}".rstrip())
        return {
            "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.name, "version": self.version},
        }

    async def _list_tools(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": self.registry.list_tools()}

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str):
            raise JSONRPCError(INVALID_PARAMS, "tools/call requires a tool name")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise JSONRPCError(INVALID_PARAMS, "arguments must be an object")
        try:
            result = await self.registry.call(name, arguments)
        except ToolNotFoundError:
            raise JSONRPCError(INVALID_PARAMS, f"Unknown tool: {name}")
        return result.to_content()

    async def _ping(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    # -----------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------

    async def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        """Handle one decoded JSON-RPC message; returns the response or None for notifications."""
        try:
            request = JSONRPCRequest.from_dict(message)
        except JSONRPCError as e:
            request_id = message.get("id") if isinstance(message, dict) else None
            return JSONRPCResponse.failure(request_id, e.code, str(e)).to_dict()

        if request.method.startswith("notifications/"):
            logger.debug(f"Notification: {request.method}")
            return None

        handlers = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }
        handler = handlers.get(request.method)
        try:
            if handler is None:
                raise JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {request.method}")
            result = await handler(request.params or {})
            response = JSONRPCResponse(id=request.id, result=result)
        except JSONRPCError as e:
            response = JSONRPCResponse.failure(request.id, e.code, str(e), e.data)
        except Exception as e:
            logger.exception(f"Internal error handling {request.method}")
            response = JSONRPCResponse.failure(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        if request.is_notification:
            return None
        return response.to_dict()

    async def _send(self, write: Writer, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8") + b"\n"
        async with self._write_lock:
            await write(data)

    async def _process_line(self, line: str, write: Writer) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            await self._send(write, JSONRPCResponse.failure(None, PARSE_ERROR, f"Parse error: {e}").to_dict())
            return
        response = await self.handle_message(message)
        if response is not None:
            await self._send(write, response)

    def _dispatch(self, line: str, write: Writer) -> None:
        task = asyncio.create_task(self._process_line(line, write))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def serve(self, reader: asyncio.StreamReader, write: Writer) -> None:
        """Read messages until EOF, then wait for in-flight requests to finish."""
        while True:
            raw = await reader.readline()
            if not raw:
                break

            line = raw.decode("utf-8").strip()
            if not line:
                continue

            if line.lower().startswith("content-length:"):
                try:
                    length = int(line.split(":", 1)[1].strip())
                    await reader.readline()  # Empty line
                    body = await reader.readexactly(length)
                except (ValueError, asyncio.IncompleteReadError) as e:
                    logger.error(f"Malformed Content-Length frame: {e}")
                    continue
                self._dispatch(body.decode("utf-8"), write)
            else:
                self._dispatch(line, write)

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        logger.info("Input closed, server stopping")


async def _stdio_streams():
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=16 * 1024 * 1024)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    async def write(data: bytes) -> None:
        def _blocking_write():
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        await asyncio.to_thread(_blocking_write)

    return reader, write


async def run_stdio_server(config: AnchorMCPConfig) -> None:
    context = build_context(config)
    registry = initialize_registry(context)
    server = MCPServer(registry, name=config.SERVER_NAME)
    reader, write = await _stdio_streams()
    logger.info(f"Solana MCP Server with Anchor Test Suite running on stdio ({len(registry.list_tools())} tools)")
    await server.serve(reader, write)


def configure_logging(debug: bool) -> None:
    # stdout carries the protocol
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Anchor build/test/deploy MCP server (stdio)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--compiler", choices=["typescript", "esbuild"], help="Override the transpiler backend")
    args = parser.parse_args(argv)

    overrides = {}
    if args.debug:
        overrides["DEBUG"] = True
    if args.compiler:
        overrides["COMPILER"] = args.compiler
    config = settings.model_copy(update=overrides) if overrides else settings

    configure_logging(config.DEBUG)
    try:
        asyncio.run(run_stdio_server(config))
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except Exception as e:
        logger.critical(f"Fatal error in main(): {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
