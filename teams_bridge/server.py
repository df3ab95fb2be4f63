"""Asyncio HTTP server for the Bot Framework webhook and status routes."""

from __future__ import annotations

import asyncio
import hmac
import json
from typing import Any
from urllib.parse import unquote, urlsplit

from loguru import logger

from teams_bridge.plugin import TeamsPlugin

STATUS_PREFIX = "/plugins/msteams"
MAX_BODY_BYTES = 1024 * 1024
MAX_HEADER_BYTES = 16 * 1024


class WebhookServer:
    """
    Serve the webhook endpoint plus read-only observability routes.

    ``POST <path>`` hands the body to :meth:`TeamsPlugin.handle_webhook`.
    ``GET /plugins/msteams/{status,teams,channels,stats}`` and
    ``GET /plugins/msteams/teams/<teamId>/channels`` expose the extension API
    as JSON; ``GET /health`` answers ``ok``.

    The status routes exist only when ``status_token`` is set and require
    ``Authorization: Bearer <status_token>``.
    """

    def __init__(
        self,
        *,
        plugin: TeamsPlugin,
        host: str = "0.0.0.0",
        port: int = 3978,
        path: str = "/api/messages",
        status_token: str | None = None,
    ):
        self.plugin = plugin
        self.host = str(host or "0.0.0.0").strip()
        self.port = max(0, int(port))
        raw_path = str(path or "/api/messages").strip()
        self.path = raw_path if raw_path.startswith("/") else f"/{raw_path}"
        self.status_token = str(status_token or "").strip()
        self._server: asyncio.AbstractServer | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int:
        if not self._server or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        if self._server:
            return
        self._server = await asyncio.start_server(
            self._handle_client, host=self.host, port=self.port
        )
        logger.info(f"Webhook server listening on {self.host}:{self.bound_port}{self.path}")

    async def stop(self) -> None:
        if not self._server:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def serve_forever(self) -> None:
        await self.start()
        async with self._server:
            await self._server.serve_forever()

    def _http_response(
        self, status: int, body: str, content_type: str = "text/plain; charset=utf-8"
    ) -> bytes:
        reason = {
            200: "OK",
            400: "Bad Request",
            401: "Unauthorized",
            404: "Not Found",
            405: "Method Not Allowed",
            413: "Payload Too Large",
            500: "Internal Server Error",
        }.get(status, "OK")
        data = body.encode("utf-8")
        headers = [
            f"HTTP/1.1 {status} {reason}",
            f"Content-Type: {content_type}",
            f"Content-Length: {len(data)}",
            "Connection: close",
            "",
            "",
        ]
        return "\r\n".join(headers).encode("utf-8") + data

    def _json_response(self, payload: Any) -> bytes:
        body = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
        return self._http_response(200, body, "application/json; charset=utf-8")

    async def _read_request(
        self, reader: asyncio.StreamReader
    ) -> tuple[str, str, dict[str, str], bytes] | None:
        raw = b""
        while b"\r\n\r\n" not in raw:
            chunk = await reader.read(4096)
            if not chunk:
                break
            raw += chunk
            if len(raw) > MAX_HEADER_BYTES + MAX_BODY_BYTES:
                break
        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.decode("iso-8859-1", errors="ignore").split("\r\n")
        parts = lines[0].split() if lines and lines[0] else []
        if len(parts) < 2:
            return None

        headers: dict[str, str] = {}
        for line in lines[1:]:
            name, sep, value = line.partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()

        length_text = headers.get("content-length", "0")
        length = int(length_text) if length_text.isdigit() else 0
        if length > MAX_BODY_BYTES:
            raise ValueError("payload too large")
        while len(body) < length:
            chunk = await reader.read(length - len(body))
            if not chunk:
                break
            body += chunk
        return parts[0].upper(), parts[1], headers, body[:length]

    def _status_authorized(self, headers: dict[str, str]) -> bool:
        scheme, _, token = headers.get("authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return False
        return hmac.compare_digest(token.strip().encode("utf-8"), self.status_token.encode("utf-8"))

    def _route_status(self, path: str) -> bytes:
        extension = self.plugin.extension
        sub = path[len(STATUS_PREFIX):].strip("/")
        segments = [unquote(item) for item in sub.split("/")] if sub else []

        if segments == ["status"]:
            return self._json_response(extension.get_status())
        if segments == ["teams"]:
            return self._json_response(extension.list_teams())
        if segments == ["channels"]:
            return self._json_response(extension.list_channels())
        if len(segments) == 3 and segments[0] == "teams" and segments[2] == "channels":
            return self._json_response(extension.list_channels(segments[1]))
        if segments == ["stats"]:
            return self._json_response(extension.get_message_stats())
        return self._http_response(404, json.dumps({"error": "not found"}), "application/json")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            try:
                request = await self._read_request(reader)
            except ValueError:
                writer.write(self._http_response(413, "payload too large\n"))
                await writer.drain()
                return
            if request is None:
                writer.write(self._http_response(400, "bad request\n"))
                await writer.drain()
                return

            method, target, headers, body = request
            path = urlsplit(target).path or "/"

            if path == "/health":
                writer.write(self._http_response(200, "ok\n"))
            elif path == self.path:
                if method != "POST":
                    writer.write(self._http_response(405, "method not allowed\n"))
                else:
                    result = await self.plugin.handle_webhook(body, headers)
                    writer.write(self._http_response(result.status, result.body))
            elif path.startswith(f"{STATUS_PREFIX}/"):
                if not self.status_token:
                    writer.write(self._http_response(404, "not found\n"))
                elif not self._status_authorized(headers):
                    writer.write(
                        self._http_response(401, json.dumps({"error": "Unauthorized"}), "application/json")
                    )
                elif method != "GET":
                    writer.write(self._http_response(405, "method not allowed\n"))
                else:
                    writer.write(self._route_status(path))
            else:
                writer.write(self._http_response(404, "not found\n"))
            await writer.drain()
        except Exception as e:
            logger.error(f"Webhook server error: {e}")
            writer.write(self._http_response(500, "internal error\n"))
            await writer.drain()
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception as e:
                logger.debug(f"Webhook client close failed: {e}")
