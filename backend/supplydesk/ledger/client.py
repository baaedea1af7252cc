from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from supplydesk.config.settings import LedgerSettings
from supplydesk.errors import ConfirmationTimeout, LedgerSubmissionFailure

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1

SUPPLY_REGISTRY_ABI = [
    {
        "type": "function",
        "name": "updateBatch",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "symbols", "type": "string[]"},
            {"name": "supplies", "type": "uint256[]"},
        ],
        "outputs": [],
    }
]


def to_uint256(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Supply {value!r} is not an integer")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"Supply {value} does not fit in uint256")
    return value


@dataclass(frozen=True)
class LedgerReceipt:
    tx_hash: str
    block_number: int
    status: int


class TransactionHandle(Protocol):
    tx_hash: str

    def wait(self, timeout_seconds: float) -> LedgerReceipt:
        ...


class LedgerWriter(Protocol):
    def submit_batch(self, symbols: list[str], supplies: list[int]) -> TransactionHandle:
        ...


class Web3TransactionHandle:
    def __init__(self, w3: Web3, tx_hash: str) -> None:
        self._w3 = w3
        self.tx_hash = tx_hash

    def wait(self, timeout_seconds: float) -> LedgerReceipt:
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=timeout_seconds
            )
        except TimeExhausted as exc:
            raise ConfirmationTimeout(self.tx_hash, timeout_seconds) from exc
        except (Web3Exception, ValueError, OSError) as exc:
            raise LedgerSubmissionFailure(
                f"Waiting for {self.tx_hash} failed: {exc}"
            ) from exc

        status = int(receipt.get("status", 0))
        block_number = int(receipt.get("blockNumber") or 0)
        if status != 1:
            raise LedgerSubmissionFailure(
                f"Transaction {self.tx_hash} reverted in block {block_number}"
            )
        return LedgerReceipt(tx_hash=self.tx_hash, block_number=block_number, status=status)


class LedgerClient:
    """Signs and sends ``updateBatch`` calls to the supply registry contract."""

    def __init__(self, w3: Web3, account: Any, contract_address: str) -> None:
        self.w3 = w3
        self.account = account
        self.contract = w3.eth.contract(address=contract_address, abi=SUPPLY_REGISTRY_ABI)

    @classmethod
    def from_settings(cls, ledger_settings: LedgerSettings) -> LedgerClient:
        if not ledger_settings.is_configured:
            raise LedgerSubmissionFailure(
                "Ledger is not configured (rpc_url, private_key, contract_address)."
            )
        w3 = Web3(Web3.HTTPProvider(ledger_settings.rpc_url))
        account = Account.from_key(ledger_settings.private_key)
        address = Web3.to_checksum_address(ledger_settings.contract_address)
        return cls(w3, account, address)

    def submit_batch(self, symbols: list[str], supplies: list[int]) -> Web3TransactionHandle:
        if len(symbols) != len(supplies):
            raise LedgerSubmissionFailure(
                f"Got {len(symbols)} symbols but {len(supplies)} supplies"
            )
        sender = self.account.address
        try:
            tx = self.contract.functions.updateBatch(symbols, supplies).build_transaction(
                {
                    "from": sender,
                    "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
                    "chainId": self.w3.eth.chain_id,
                }
            )
            signed = self.account.sign_transaction(tx)
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            tx_hash = self.w3.eth.send_raw_transaction(raw)
        except (Web3Exception, ValueError, OSError) as exc:
            raise LedgerSubmissionFailure(f"updateBatch submission failed: {exc}") from exc

        tx_hex = self.w3.to_hex(tx_hash)
        logger.info("Submitted updateBatch for %d symbols: %s", len(symbols), tx_hex)
        return Web3TransactionHandle(self.w3, tx_hex)
