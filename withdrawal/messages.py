"""
Extraction of the cross-chain withdrawal message from the L2 receipt of the
`initiateWithdrawal` call. Everything here is recomputed on every run.
"""

import logging

from eth_abi.abi import encode
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD
from web3.types import TxReceipt

from .custom_errors import ConfigurationError, WithdrawalReceiptError
from .types import WithdrawalEvent, WithdrawalMessage

logger = logging.getLogger(__name__)

WITHDRAWAL_HASH_TYPES = ["uint256", "address", "address", "uint256", "uint256", "bytes"]


def parse_tx_hash(value: str) -> HexBytes:
    """Validate a user supplied transaction hash (32 bytes, hex encoded)."""
    try:
        tx_hash = HexBytes(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid transaction hash `{value}`", e) from e

    if len(tx_hash) != 32:
        raise ConfigurationError(
            f"Invalid transaction hash `{value}`: expected 32 bytes, got {len(tx_hash)}"
        )

    return tx_hash


def compute_withdrawal_hash(message: WithdrawalMessage) -> HexBytes:
    """
    `keccak256(abi.encode(nonce, sender, target, value, gasLimit, data))`, the
    key under which the portal records proof and finalization.
    """
    return HexBytes(Web3.keccak(encode(WITHDRAWAL_HASH_TYPES, list(message))))


def parse_withdrawal_event(
    message_passer: Contract, receipt: TxReceipt
) -> WithdrawalEvent:
    """
    Decode the `MessagePassed` event emitted by the `L2ToL1MessagePasser`.

    Parameters
    ----------
    message_passer : Contract
        L2ToL1MessagePasser contract bound to the L2 provider.

    receipt : TxReceipt
        Receipt of the L2 transaction that initiated the withdrawal.

    Returns
    -------
    WithdrawalEvent
        The decoded message, the emitted withdrawal hash and the L2 block the
        withdrawal was included in.
    """
    tx_hash = HexBytes(receipt["transactionHash"]).to_0x_hex()

    if receipt.get("status") != 1:
        raise WithdrawalReceiptError(
            f"Withdrawal transaction {tx_hash} did not succeed on L2"
        )

    events = message_passer.events.MessagePassed().process_receipt(
        receipt, errors=DISCARD
    )

    if not events:
        raise WithdrawalReceiptError(
            f"Transaction {tx_hash} does not emit a `MessagePassed` event"
        )

    if len(events) > 1:
        logger.warning(
            "Transaction %s emits %d withdrawals, only the first one is processed",
            tx_hash,
            len(events),
        )

    args = events[0]["args"]

    message = WithdrawalMessage(
        nonce=args["nonce"],
        sender=to_checksum_address(args["sender"]),
        target=to_checksum_address(args["target"]),
        value=args["value"],
        gas_limit=args["gasLimit"],
        data=bytes(args["data"]),
    )
    withdrawal_hash = HexBytes(args["withdrawalHash"])

    computed_hash = compute_withdrawal_hash(message)
    if computed_hash != withdrawal_hash:
        raise WithdrawalReceiptError(
            f"`computed hash {computed_hash.to_0x_hex()} != withdrawal hash "
            f"{withdrawal_hash.to_0x_hex()}`. Verify if withdrawal params are correct."
        )

    return WithdrawalEvent(
        message=message,
        withdrawal_hash=withdrawal_hash,
        l2_block_number=receipt["blockNumber"],
    )
