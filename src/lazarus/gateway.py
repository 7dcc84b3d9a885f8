"""Websocket gateway event shaping around a worker."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from typing import Any

from loguru import logger

from lazarus.errors import ResponseCode
from lazarus.transport import ConnectionTransport, PostToConnection
from lazarus.worker import Worker

JSON_HEADERS = {"Content-Type": "application/json"}


def gateway_response(code: ResponseCode) -> dict[str, Any]:
    return {"statusCode": int(code), "headers": dict(JSON_HEADERS), "body": ""}


class GatewayAdapter:
    """Translate gateway events into worker invocations.

    Events without a body are connection lifecycle routes and succeed without
    touching the session. Responses travel back through ``post``, never in the
    gateway response body.
    """

    def __init__(self, worker: Worker, post: PostToConnection) -> None:
        self._worker = worker
        self._post = post
        self._events = 0

    async def handle_event(self, event: Mapping[str, Any]) -> dict[str, Any]:
        self._events += 1
        request_context = event.get("requestContext") or {}
        route_key = request_context.get("routeKey")
        connection_id = request_context.get("connectionId")
        logger.info("gateway.event route={} connection={} seq={}", route_key, connection_id, self._events)

        body = event.get("body")
        if not body:
            return gateway_response(ResponseCode.OK)
        if not connection_id:
            logger.warning("gateway.no_connection route={}", route_key)
            return gateway_response(ResponseCode.BAD_REQUEST)
        if event.get("isBase64Encoded"):
            try:
                body = base64.b64decode(body, validate=True)
            except (binascii.Error, ValueError):
                logger.warning("gateway.bad_base64 connection={}", connection_id)
                return gateway_response(ResponseCode.BAD_REQUEST)

        result = await self._worker.handle(
            body,
            ConnectionTransport(self._post, connection_id),
            connection_id=connection_id,
            context={"routeKey": route_key, "requestContext": dict(request_context)},
        )
        logger.info("gateway.finished code={}", int(result.code))
        return gateway_response(result.code)
