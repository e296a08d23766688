from enum import StrEnum
from typing import List, NamedTuple, Optional

from eth_typing import ChecksumAddress
from hexbytes import HexBytes


class WithdrawalMessage(NamedTuple):
    """
    Mirrors `Types.WithdrawalTransaction`; field order matches the ABI tuple
    so an instance can be passed straight to the portal functions.
    """

    nonce: int
    sender: ChecksumAddress
    target: ChecksumAddress
    value: int
    gas_limit: int
    data: bytes


class WithdrawalEvent(NamedTuple):
    message: WithdrawalMessage
    withdrawal_hash: HexBytes
    l2_block_number: int


class OutputRootProof(NamedTuple):
    """
    - `version`: 32-byte proof format version (currently
    `b'\\x00' * 32`).
    - `state_root`: 32-byte post-state root of the L2 block.
    - `message_passer_storage_root`: 32-byte storage root of the
    `L2ToL1MessagePasser` contract in that block.
    - `latest_block_hash`: 32-byte canonical block hash.
    """

    version: bytes
    state_root: bytes
    message_passer_storage_root: bytes
    latest_block_hash: bytes


class ProofBundle(NamedTuple):
    output_root_proof: OutputRootProof
    withdrawal_proof: List[bytes]


class DisputeGameRef(NamedTuple):
    index: int
    l2_block_number: int
    root_claim: bytes
    timestamp: int
    metadata: bytes
    extra_data: bytes


class OutputRootRef(NamedTuple):
    index: int
    l2_block_number: int
    output_root: bytes
    timestamp: int


class GasConfig(NamedTuple):
    """
    User-declared fee policy. All prices are in wei.

    `gas_limit == 0` leaves the limit to the submission layer, unless
    `gas_multiplier > 1.0` asks for a simulated estimate to be scaled.
    """

    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_limit: int = 0
    gas_multiplier: float = 1.0
    max_gas_price: Optional[int] = None


class LifecycleState(StrEnum):
    UNPROVEN = "unproven"
    PROVEN = "proven"
    FINALIZED = "finalized"
    NOT_YET_PROVABLE = "not-yet-provable"


class WithdrawalAction(StrEnum):
    NONE = "none"
    PROVE = "prove"
    FINALIZE = "finalize"


class DryRunPreview(NamedTuple):
    action: str
    sender: ChecksumAddress
    to: Optional[ChecksumAddress]
    value: int
    gas: int
    gas_price: Optional[int]
    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]
    estimated_cost_wei: int
    data: HexBytes


class SubmissionResult(NamedTuple):
    """`tx_hash` is None for a dry run, `preview` is None otherwise."""

    action: str
    tx_hash: Optional[HexBytes] = None
    preview: Optional[DryRunPreview] = None


class WithdrawalOutcome(NamedTuple):
    state: LifecycleState
    action: WithdrawalAction = WithdrawalAction.NONE
    tx_hash: Optional[HexBytes] = None
    reason: Optional[str] = None
    preview: Optional[DryRunPreview] = None
