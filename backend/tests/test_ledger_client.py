from unittest.mock import MagicMock

import pytest
from web3.exceptions import TimeExhausted

from supplydesk.config.settings import LedgerSettings
from supplydesk.errors import ConfirmationTimeout, LedgerSubmissionFailure
from supplydesk.ledger.client import UINT256_MAX, LedgerClient, to_uint256


def build_client():
    w3 = MagicMock()
    w3.eth.chain_id = 421614
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = b"\x12\x34"
    w3.to_hex.return_value = "0x1234"
    account = MagicMock()
    account.address = "0x000000000000000000000000000000000000dEaD"
    signed = MagicMock()
    signed.raw_transaction = b"signed"
    account.sign_transaction.return_value = signed
    client = LedgerClient(w3, account, "0x0000000000000000000000000000000000000001")
    return client, w3, account


def test_submit_batch_builds_signs_and_sends() -> None:
    client, w3, account = build_client()
    update_batch = client.contract.functions.updateBatch
    update_batch.return_value.build_transaction.return_value = {"data": "0x"}

    handle = client.submit_batch(["BTC", "ETH"], [19_000_025, 120_000_050])

    update_batch.assert_called_once_with(["BTC", "ETH"], [19_000_025, 120_000_050])
    update_batch.return_value.build_transaction.assert_called_once_with(
        {"from": account.address, "nonce": 7, "chainId": 421614}
    )
    w3.eth.get_transaction_count.assert_called_once_with(account.address, "pending")
    account.sign_transaction.assert_called_once_with({"data": "0x"})
    w3.eth.send_raw_transaction.assert_called_once_with(b"signed")
    assert handle.tx_hash == "0x1234"


def test_submit_batch_wraps_rpc_errors() -> None:
    client, w3, _ = build_client()
    w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

    with pytest.raises(LedgerSubmissionFailure):
        client.submit_batch(["BTC"], [1])


def test_submit_batch_rejects_mismatched_lengths() -> None:
    client, _, _ = build_client()
    with pytest.raises(LedgerSubmissionFailure):
        client.submit_batch(["BTC", "ETH"], [1])


def test_wait_returns_receipt_with_block_number() -> None:
    client, w3, _ = build_client()
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 55}

    receipt = client.submit_batch(["BTC"], [1]).wait(30)

    w3.eth.wait_for_transaction_receipt.assert_called_once_with("0x1234", timeout=30)
    assert receipt.block_number == 55
    assert receipt.tx_hash == "0x1234"


def test_wait_timeout_raises_confirmation_timeout() -> None:
    client, w3, _ = build_client()
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")

    with pytest.raises(ConfirmationTimeout) as excinfo:
        client.submit_batch(["BTC"], [1]).wait(5)
    assert excinfo.value.tx_hash == "0x1234"


def test_reverted_transaction_is_a_submission_failure() -> None:
    client, w3, _ = build_client()
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 56}

    with pytest.raises(LedgerSubmissionFailure) as excinfo:
        client.submit_batch(["BTC"], [1]).wait(5)
    assert not isinstance(excinfo.value, ConfirmationTimeout)


def test_from_settings_requires_complete_configuration() -> None:
    with pytest.raises(LedgerSubmissionFailure):
        LedgerClient.from_settings(LedgerSettings.model_construct(rpc_url=None, private_key=None, contract_address=None))


@pytest.mark.parametrize("value", [-1, UINT256_MAX + 1, 1.5, True, None])
def test_to_uint256_rejects_invalid_values(value) -> None:
    with pytest.raises(ValueError):
        to_uint256(value)


def test_to_uint256_accepts_integers() -> None:
    assert to_uint256(0) == 0
    assert to_uint256(19_000_025) == 19_000_025
