"""Settlement client protocol — reads and writes against the lending contracts."""
from typing import Any, Protocol

from ..models import Receipt


class SettlementClient(Protocol):
    """Abstract interface for the deposit/borrow manager contracts."""

    async def get_supported_tokens(self) -> list[str]: ...

    async def get_asset(self, token_id: str) -> Any: ...

    async def get_borrow_index(self, token_id: str) -> int: ...

    async def get_total_borrows_scaled(self, token_id: str) -> int: ...

    async def get_deposit_scaled(self, token_id: str, user: str) -> int: ...

    async def get_borrow_scaled(self, token_id: str, user: str) -> int: ...

    async def get_ray(self) -> int: ...

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int: ...

    async def get_wallet_balance(self, token_address: str, owner: str) -> int: ...

    async def get_latest_block_timestamp(self) -> int: ...

    async def approve(self, token_address: str, spender: str, amount: int) -> str: ...

    async def deposit(self, token_id: str, amount: int, value: int = 0) -> str: ...

    async def withdraw(self, token_id: str, amount: int) -> str: ...

    async def borrow(
        self,
        token_id: str,
        amount: int,
        update_data: list[bytes],
        price_ids: list[str],
        value: int = 0,
    ) -> str: ...

    async def repay(
        self,
        token_id: str,
        amount: int,
        value: int = 0,
        update_data: list[bytes] | None = None,
        price_ids: list[str] | None = None,
    ) -> str: ...

    async def wait_for_receipt(self, tx_hash: str) -> Receipt: ...
