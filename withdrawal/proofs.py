"""
Merkle proof of a withdrawal inside the `L2ToL1MessagePasser` storage trie,
and the output root preimage the L1 commitment is checked against.
"""

import logging
from typing import List, Sequence

import rlp
from eth_abi.abi import encode
from eth_utils.conversions import to_bytes
from hexbytes import HexBytes
from web3 import Web3

from utils.config import L2_TO_L1_MESSAGE_PASSER
from .custom_errors import OutputRootMismatchError
from .types import OutputRootProof, ProofBundle

logger = logging.getLogger(__name__)

OUTPUT_ROOT_VERSION = (0).to_bytes(32, byteorder="big")


def get_storage_slot(withdrawal_hash: bytes) -> HexBytes:
    """
    Storage slot of `sentMessages[withdrawal_hash]` in the L2ToL1MessagePasser.

    The mapping lives at slot 0, so the key is
    `keccak256(withdrawal_hash ++ uint256(0))`.
    """
    return HexBytes(Web3.keccak(bytes(withdrawal_hash) + (0).to_bytes(32, "big")))


def compute_output_root(output_root_proof: OutputRootProof) -> HexBytes:
    return HexBytes(
        Web3.keccak(
            encode(["bytes32", "bytes32", "bytes32", "bytes32"], list(output_root_proof))
        )
    )


def verify_output_root(
    output_root_proof: OutputRootProof, expected_root: bytes
) -> None:
    computed = compute_output_root(output_root_proof)
    expected = HexBytes(expected_root)

    if computed != expected:
        raise OutputRootMismatchError(
            f"Claim doesn't match. `computed: {computed.to_0x_hex()} != "
            f"committed: {expected.to_0x_hex()}`"
        )


def maybe_add_proof_node(key: bytes, proof: Sequence[bytes]) -> List[bytes]:
    """
    Some nodes return a proof ending in a branch node that embeds the leaf
    (leaves shorter than 32 bytes are inlined). The portal expects the leaf as
    its own element, so pull it out and append it.
    """
    proof = list(proof)
    if not proof:
        return proof

    last_node = rlp.decode(proof[-1])
    if len(last_node) != 17:
        return proof

    key_hex = HexBytes(key).hex()
    for item in last_node:
        if not isinstance(item, list):
            continue

        # drop the first nibble: it only flags the node type
        suffix = HexBytes(item[0]).hex()[1:]
        if not key_hex.endswith(suffix):
            continue

        return proof + [rlp.encode(item)]

    return proof


class WithdrawalProofBuilder:
    """
    Builds the `OutputRootProof` and storage proof for `proveWithdrawalTransaction`
    against the L2 block committed on L1 (output proposal or dispute game).

    Parameters
    ----------
    l2_provider : Web3
    """

    def __init__(self, l2_provider: Web3) -> None:
        self.l2_provider = l2_provider

    def build(self, withdrawal_hash: bytes, l2_block_number: int) -> ProofBundle:
        """
        Parameters
        ----------
        withdrawal_hash : bytes
            32-byte withdrawal hash emitted by `MessagePassed`.

        l2_block_number : int
            L2 block of the commitment the withdrawal will be proven against.
            Must be at or after the block that included the withdrawal.

        Returns
        -------
        ProofBundle
        """
        storage_slot = get_storage_slot(withdrawal_hash)

        proof = self.l2_provider.eth.get_proof(
            L2_TO_L1_MESSAGE_PASSER,
            [int.from_bytes(storage_slot, "big")],
            l2_block_number,
        )

        storage_proofs = proof.get("storageProof")
        if not storage_proofs:
            raise ValueError("No storage proofs returned")

        nodes = [
            to_bytes(hexstr=node) if isinstance(node, str) else bytes(node)
            for node in storage_proofs[0]["proof"]
        ]
        withdrawal_proof = maybe_add_proof_node(Web3.keccak(storage_slot), nodes)

        block = self.l2_provider.eth.get_block(l2_block_number)

        state_root = block.get("stateRoot")
        block_hash = block.get("hash")

        if not state_root:
            raise ValueError("Error finding `stateRoot` in `BlockData`")

        if not block_hash:
            raise ValueError("Error finding `hash` in `BlockData`")

        output_root_proof = OutputRootProof(
            version=OUTPUT_ROOT_VERSION,
            state_root=bytes(state_root),
            message_passer_storage_root=bytes(proof["storageHash"]),
            latest_block_hash=bytes(block_hash),
        )

        logger.debug(
            "Built proof for %s at L2 block %d (%d nodes)",
            HexBytes(withdrawal_hash).to_0x_hex(),
            l2_block_number,
            len(withdrawal_proof),
        )

        return ProofBundle(
            output_root_proof=output_root_proof, withdrawal_proof=withdrawal_proof
        )
