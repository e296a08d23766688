"""
Shared fixtures and fakes for the withdrawal tests.

Contracts are `MagicMock`s shaped like web3 contracts:
`contract.functions.name(*args).call()`.
"""
from typing import Any, List, Sequence, Tuple
from unittest.mock import MagicMock

import pytest
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes

from withdrawal.messages import compute_withdrawal_hash
from withdrawal.proofs import compute_output_root
from withdrawal.types import OutputRootProof, ProofBundle, WithdrawalMessage

# well known hardhat / anvil development account #0
HARDHAT_MNEMONIC = "test test test test test test test test test test test junk"
HARDHAT_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
HARDHAT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

WITHDRAWAL_TX_HASH = HexBytes("0x230e0cad37990c92bbd54332ae2ecd28a2c8ff9dbaef846871eff5628ad18b00")
WITHDRAWAL_BLOCK = 100


def contract_call(value: Any = None, side_effect: Any = None) -> MagicMock:
    """A bound contract function whose `.call()` returns `value`."""
    fn = MagicMock()
    fn.call.return_value = value
    if side_effect is not None:
        fn.call.side_effect = side_effect
    return fn


def game_tuple(index: int, l2_block_number: int, root_claim: bytes = b"\x11" * 32) -> Tuple:
    """`GameSearchResult` as returned by `findLatestGames`."""
    extra_data = l2_block_number.to_bytes(32, "big")
    return (index, b"\x00" * 32, 1_700_000_000 + index, root_claim, extra_data)


class FakeDisputeGameFactory:
    """
    In-memory DisputeGameFactory. `games` holds `(game_type, l2_block_number)`
    by index; `findLatestGames` scans backwards from `start` like the real one.
    """

    def __init__(self, games: Sequence[Tuple[int, int]], root_claims=None) -> None:
        self.games = list(games)
        self.root_claims = root_claims or {}
        self.probes = 0

    def find_latest_games(self, game_type: int, start: int, n: int) -> List[Tuple]:
        self.probes += 1
        found = []

        for index in range(min(start, len(self.games) - 1), -1, -1):
            kind, l2_block_number = self.games[index]
            if kind != game_type:
                continue

            found.append(
                game_tuple(
                    index, l2_block_number, self.root_claims.get(index, b"\x11" * 32)
                )
            )
            if len(found) == n:
                break

        return found

    def as_contract(self) -> MagicMock:
        contract = MagicMock()
        contract.functions.gameCount.side_effect = lambda: contract_call(len(self.games))
        contract.functions.findLatestGames.side_effect = (
            lambda game_type, start, n: contract_call(
                self.find_latest_games(game_type, start, n)
            )
        )
        return contract


def portal_with_game_type(game_type: int = 0) -> MagicMock:
    portal = MagicMock()
    portal.functions.respectedGameType.return_value = contract_call(game_type)
    return portal


@pytest.fixture
def withdrawal_message() -> WithdrawalMessage:
    return WithdrawalMessage(
        nonce=(1 << 240) + 42,
        sender=to_checksum_address(HARDHAT_ADDRESS),
        target=to_checksum_address(HARDHAT_ADDRESS),
        value=10**15,
        gas_limit=21_000,
        data=b"",
    )


@pytest.fixture
def withdrawal_receipt(withdrawal_message):
    """L2 receipt plus a message passer whose `MessagePassed` decodes to the message."""
    withdrawal_hash = compute_withdrawal_hash(withdrawal_message)

    receipt = {
        "status": 1,
        "transactionHash": WITHDRAWAL_TX_HASH,
        "blockNumber": WITHDRAWAL_BLOCK,
        "logs": [],
    }

    event = {
        "args": {
            "nonce": withdrawal_message.nonce,
            "sender": withdrawal_message.sender,
            "target": withdrawal_message.target,
            "value": withdrawal_message.value,
            "gasLimit": withdrawal_message.gas_limit,
            "data": withdrawal_message.data,
            "withdrawalHash": withdrawal_hash,
        }
    }

    message_passer = MagicMock()
    message_passer.events.MessagePassed.return_value.process_receipt.return_value = [event]

    return receipt, message_passer, withdrawal_hash


@pytest.fixture
def proof_bundle() -> ProofBundle:
    return ProofBundle(
        output_root_proof=OutputRootProof(
            version=b"\x00" * 32,
            state_root=b"\x33" * 32,
            message_passer_storage_root=b"\x22" * 32,
            latest_block_hash=b"\x44" * 32,
        ),
        withdrawal_proof=[b"\xc0\x01", b"\xc0\x02"],
    )


@pytest.fixture
def proof_root(proof_bundle) -> bytes:
    return bytes(compute_output_root(proof_bundle.output_root_proof))


@pytest.fixture
def l1_provider() -> MagicMock:
    provider = MagicMock()
    provider.eth.chain_id = 11155111
    provider.eth.gas_price = 10 * 10**9
    provider.eth.get_transaction_count.return_value = 7
    return provider
