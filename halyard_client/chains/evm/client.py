"""EVM JSON-RPC client with fallback support, backed by web3."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp
from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from ...config import AppConfig
from ...models import Receipt
from . import abi

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_bytes32(value: str | bytes) -> bytes:
    """Left-padded 32-byte value from a hex string or bytes."""
    if isinstance(value, bytes):
        raw = value
    else:
        raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    if len(raw) > 32:
        raise ValueError(f"value longer than 32 bytes: {value!r}")
    return raw.rjust(32, b"\0")


class EvmClient:
    """Halyard settlement client with automatic read endpoint fallback.

    Reads rotate through ``rpc_endpoints`` until one answers. Writes are
    signed locally and broadcast to the current endpoint only.
    """

    def __init__(self, config: AppConfig) -> None:
        self.endpoints = list(config.chain.rpc_endpoints)
        self.timeout = config.chain.rpc_timeout
        self.chain_id = config.chain.chain_id
        self.poll_interval = config.chain.receipt_poll_interval
        self.current_rpc_index = 0
        self._contracts_cfg = config.contracts
        self._w3s: dict[int, AsyncWeb3] = {}

        self._account = (
            Account.from_key(config.wallet.private_key) if config.wallet.private_key else None
        )
        self.address = Web3.to_checksum_address(config.wallet.address)
        if self._account and self._account.address != self.address:
            logger.warning(
                "Signing key address %s differs from configured wallet %s",
                self._account.address,
                self.address,
            )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _web3(self, index: int) -> AsyncWeb3:
        if index not in self._w3s:
            self._w3s[index] = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(
                    self.endpoints[index],
                    request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout)},
                )
            )
        return self._w3s[index]

    async def _read(self, call: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        """Run ``call`` against endpoints in order until one succeeds."""
        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]
            try:
                result = await call(self._web3(rpc_index))
                if rpc_index != self.current_rpc_index:
                    logger.info("Switched to RPC endpoint: %s", rpc_url)
                    self.current_rpc_index = rpc_index
                return result
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    @staticmethod
    def _contract(w3: AsyncWeb3, address: str, contract_abi: list[dict[str, Any]]) -> Any:
        return w3.eth.contract(address=Web3.to_checksum_address(address), abi=contract_abi)

    def _deposit_manager(self, w3: AsyncWeb3) -> Any:
        return self._contract(w3, self._contracts_cfg.deposit_manager, abi.DEPOSIT_MANAGER_ABI)

    def _borrow_manager(self, w3: AsyncWeb3) -> Any:
        return self._contract(w3, self._contracts_cfg.borrow_manager, abi.BORROW_MANAGER_ABI)

    async def _send(self, build: Callable[[AsyncWeb3], Any], value: int = 0) -> str:
        """Build, sign and broadcast a contract call; returns the tx hash."""
        if self._account is None:
            raise RuntimeError("No signing key configured for writes")

        w3 = self._web3(self.current_rpc_index)
        nonce = await w3.eth.get_transaction_count(self._account.address, "pending")
        params: dict[str, Any] = {
            "from": self._account.address,
            "value": value,
            "nonce": nonce,
        }
        if self.chain_id:
            params["chainId"] = self.chain_id

        tx = await build(w3).build_transaction(params)
        signed = self._account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        hex_hash = Web3.to_hex(tx_hash)
        logger.info("Broadcast transaction %s (value=%d)", hex_hash, value)
        return hex_hash

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_supported_tokens(self) -> list[str]:
        raw = await self._read(
            lambda w3: self._deposit_manager(w3).functions.getSupportedTokens().call()
        )
        return [Web3.to_hex(to_bytes32(t)) for t in raw]

    async def get_asset(self, token_id: str) -> Any:
        return await self._read(
            lambda w3: self._deposit_manager(w3).functions.getAsset(to_bytes32(token_id)).call()
        )

    async def get_borrow_index(self, token_id: str) -> int:
        return await self._read(
            lambda w3: self._borrow_manager(w3).functions.borrowIndex(to_bytes32(token_id)).call()
        )

    async def get_total_borrows_scaled(self, token_id: str) -> int:
        return await self._read(
            lambda w3: self._borrow_manager(w3)
            .functions.totalBorrowsScaled(to_bytes32(token_id))
            .call()
        )

    async def get_deposit_scaled(self, token_id: str, user: str) -> int:
        user = Web3.to_checksum_address(user)
        return await self._read(
            lambda w3: self._deposit_manager(w3)
            .functions.balanceOf(to_bytes32(token_id), user)
            .call()
        )

    async def get_borrow_scaled(self, token_id: str, user: str) -> int:
        user = Web3.to_checksum_address(user)
        return await self._read(
            lambda w3: self._borrow_manager(w3)
            .functions.userBorrowScaled(to_bytes32(token_id), user)
            .call()
        )

    async def get_ray(self) -> int:
        return await self._read(lambda w3: self._deposit_manager(w3).functions.RAY().call())

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        owner = Web3.to_checksum_address(owner)
        spender = Web3.to_checksum_address(spender)
        return await self._read(
            lambda w3: self._contract(w3, token_address, abi.ERC20_ABI)
            .functions.allowance(owner, spender)
            .call()
        )

    async def get_wallet_balance(self, token_address: str, owner: str) -> int:
        owner = Web3.to_checksum_address(owner)
        if int(token_address, 16) == 0:
            return await self._read(lambda w3: w3.eth.get_balance(owner))
        return await self._read(
            lambda w3: self._contract(w3, token_address, abi.ERC20_ABI)
            .functions.balanceOf(owner)
            .call()
        )

    async def get_latest_block_timestamp(self) -> int:
        block = await self._read(lambda w3: w3.eth.get_block("latest"))
        return int(block["timestamp"])

    async def get_update_fee(self, pyth_address: str, update_data: list[bytes]) -> int:
        return await self._read(
            lambda w3: self._contract(w3, pyth_address, abi.PYTH_ABI)
            .functions.getUpdateFee(update_data)
            .call()
        )

    async def create_mock_update(
        self,
        pyth_address: str,
        feed_id: str,
        price: int,
        conf: int,
        expo: int,
        publish_time: int,
    ) -> bytes:
        """Ask a MockPyth contract to encode a synthetic update payload."""
        return await self._read(
            lambda w3: self._contract(w3, pyth_address, abi.MOCK_PYTH_ABI)
            .functions.createPriceFeedUpdateData(
                to_bytes32(feed_id),
                price,
                conf,
                expo,
                price,
                conf,
                publish_time,
                max(0, publish_time - 60),
            )
            .call()
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def approve(self, token_address: str, spender: str, amount: int) -> str:
        spender = Web3.to_checksum_address(spender)
        return await self._send(
            lambda w3: self._contract(w3, token_address, abi.ERC20_ABI).functions.approve(
                spender, amount
            )
        )

    async def deposit(self, token_id: str, amount: int, value: int = 0) -> str:
        return await self._send(
            lambda w3: self._deposit_manager(w3).functions.deposit(to_bytes32(token_id), amount),
            value=value,
        )

    async def withdraw(self, token_id: str, amount: int) -> str:
        return await self._send(
            lambda w3: self._deposit_manager(w3).functions.withdraw(to_bytes32(token_id), amount)
        )

    async def borrow(
        self,
        token_id: str,
        amount: int,
        update_data: list[bytes],
        price_ids: list[str],
        value: int = 0,
    ) -> str:
        ids = [to_bytes32(p) for p in price_ids]
        return await self._send(
            lambda w3: self._borrow_manager(w3).functions.borrow(
                to_bytes32(token_id), amount, update_data, ids
            ),
            value=value,
        )

    async def repay(
        self,
        token_id: str,
        amount: int,
        value: int = 0,
        update_data: list[bytes] | None = None,
        price_ids: list[str] | None = None,
    ) -> str:
        if update_data is None:
            return await self._send(
                lambda w3: self._borrow_manager(w3)
                .get_function_by_signature("repay(bytes32,uint256)")(to_bytes32(token_id), amount),
                value=value,
            )

        ids = [to_bytes32(p) for p in price_ids or []]
        return await self._send(
            lambda w3: self._borrow_manager(w3).get_function_by_signature(
                "repay(bytes32,uint256,bytes[],bytes32[])"
            )(to_bytes32(token_id), amount, update_data, ids),
            value=value,
        )

    async def wait_for_receipt(self, tx_hash: str) -> Receipt:
        """Poll until ``tx_hash`` is mined; there is no overall timeout."""

        async def fetch(w3: AsyncWeb3) -> Any:
            try:
                return await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None

        while True:
            try:
                receipt = await self._read(fetch)
            except RuntimeError as e:
                # the transaction is already broadcast; keep waiting
                logger.warning("Receipt poll for %s failed, retrying: %s", tx_hash, e)
                receipt = None
            if receipt is not None:
                success = receipt["status"] == 1
                if not success:
                    logger.warning("Transaction %s reverted", tx_hash)
                return Receipt(
                    tx_hash=tx_hash,
                    success=success,
                    block_number=int(receipt["blockNumber"]),
                )
            await asyncio.sleep(self.poll_interval)
