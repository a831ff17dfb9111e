"""
JSON-RPC node client.

Talks to an Ethereum execution node over HTTP:
  - eth_blockNumber             -> current head
  - eth_getBlockByNumber(h, true) -> entry at height h

A `confirmations` depth keeps the reported head that many blocks behind the
node's latest block, so entries near the tip are treated as pending.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx

from headsync.common.config import DEFAULT_REQUEST_TIMEOUT
from headsync.common.errors import NothingAtHeight, PendingBlock, TransportError
from headsync.common.types import Entry, Height, is_pending_rpc_block
from headsync.node.client import NodeClient

logger = logging.getLogger(__name__)


class RPCNodeClient(NodeClient):
    """NodeClient backed by an Ethereum JSON-RPC endpoint."""

    def __init__(
        self,
        url: str,
        confirmations: int = 0,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.confirmations = confirmations
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self._latest: Optional[int] = None

    async def _call(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.RequestError as exc:
            raise TransportError(f"{method}: network error talking to {self.url}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"{method}: HTTP error {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except ValueError as exc:
            raise TransportError(f"{method}: response is not valid JSON") from exc

        if not isinstance(body, dict):
            raise TransportError(f"{method}: malformed JSON-RPC response")
        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise TransportError(
                    f"{method}: RPC error {error.get('code')}: {error.get('message')}"
                )
            raise TransportError(f"{method}: RPC error {error!r}")
        if "result" not in body:
            raise TransportError(f"{method}: response has no result")
        return body["result"]

    async def latest_block_number(self) -> int:
        result = await self._call("eth_blockNumber", [])
        try:
            latest = int(result, 16)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"eth_blockNumber: malformed quantity {result!r}") from exc
        self._latest = latest
        return latest

    async def current_head(self) -> Height:
        latest = await self.latest_block_number()
        return max(0, latest - self.confirmations)

    async def entry_at(self, height: Height) -> Entry:
        if self.confirmations:
            if self._latest is None:
                await self.latest_block_number()
            if height > self._latest - self.confirmations:
                raise PendingBlock(height)

        result = await self._call("eth_getBlockByNumber", [hex(height), True])
        if result is None:
            raise NothingAtHeight(height)
        if not isinstance(result, dict):
            raise TransportError(f"eth_getBlockByNumber: malformed block at height {height}")
        if is_pending_rpc_block(result):
            raise PendingBlock(height)

        try:
            entry = Entry.from_rpc(result)
        except (KeyError, TypeError, ValueError) as exc:
            raise TransportError(f"eth_getBlockByNumber: malformed block at height {height}: {exc}") from exc
        if entry.height != height:
            raise TransportError(
                f"eth_getBlockByNumber: asked for height {height}, node returned {entry.height}"
            )
        logger.debug("Fetched block #%d (%d txs)", height, len(entry.transactions))
        return entry

    async def aclose(self) -> None:
        await self._client.aclose()
