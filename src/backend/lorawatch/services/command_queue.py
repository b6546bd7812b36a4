"""Downlink command queue on the LoRaWAN network server."""

import asyncio

import httpx
import structlog

from lorawatch.core.errors import CommandQueueError
from lorawatch.engine.actions import fport_for, split_commands

logger = structlog.get_logger()


class NetworkServerCommandQueue:
    """Enqueues confirmed downlinks through the network server REST API."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 10.0,
        command_delay: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.command_delay = command_delay
        self._client = client
        self._owns_client = client is None
        self._pending: set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def drain(self) -> None:
        """Wait for chained commands still being sent."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            logger.warning("Dropping chained downlinks on shutdown", pending=len(self._pending))
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def enqueue(self, dev_eui: str, device_type: int | None, action: str) -> None:
        """Enqueue the ``;``-separated commands of ``action`` in order.

        The first command is sent before returning. The rest follow from a
        background task, ``command_delay`` seconds apart, so callers are not
        held for the whole chain.

        Raises:
            CommandQueueError: The network server rejected or did not answer
                the first command.
        """
        commands = split_commands(action)
        if not commands:
            raise CommandQueueError("Empty action", dev_eui=dev_eui)

        f_port = fport_for(device_type)
        await self._post(dev_eui, f_port, commands[0])

        if len(commands) > 1:
            task = asyncio.create_task(
                self._send_chain(dev_eui, f_port, commands[1:]),
                name=f"downlink-chain-{dev_eui}",
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _send_chain(self, dev_eui: str, f_port: int, commands: list[str]) -> None:
        for index, data in enumerate(commands):
            if self.command_delay > 0:
                await asyncio.sleep(self.command_delay)
            try:
                await self._post(dev_eui, f_port, data)
            except CommandQueueError as e:
                logger.error(
                    "Chained downlink failed, remaining commands dropped",
                    dev_eui=dev_eui,
                    dropped=len(commands) - index,
                    retryable=e.retryable,
                    error=e.message,
                )
                return

    async def _post(self, dev_eui: str, f_port: int, data: str) -> None:
        url = f"{self.base_url}/api/devices/{dev_eui}/queue"
        body = {
            "deviceQueueItem": {
                "confirmed": True,
                "data": data,
                "devEUI": dev_eui,
                "fPort": f_port,
            }
        }
        headers = {
            "Content-Type": "application/json",
            "Grpc-Metadata-Authorization": f"Bearer {self.api_token}",
        }

        try:
            response = await self._get_client().post(url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CommandQueueError(
                f"Network server returned {e.response.status_code}",
                dev_eui=dev_eui,
                retryable=e.response.status_code >= 500,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise CommandQueueError(
                f"Network server request failed: {e}",
                dev_eui=dev_eui,
                retryable=True,
                original_error=e,
            ) from e

        logger.info("Downlink enqueued", dev_eui=dev_eui, f_port=f_port)
