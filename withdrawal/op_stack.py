"""
OP Stack withdrawal strategies: proving and finalizing an L2 -> L1
withdrawal against the L1 portal.

Two verification regimes exist on OP Stack chains:

* output-oracle: the legacy `OptimismPortal` checks proofs against output
  roots posted by a single proposer to the `L2OutputOracle`.
* dispute-game: `OptimismPortal2` checks proofs against the root claim of a
  (challengeable) game created by the `DisputeGameFactory`.

Both expose the same operations to the orchestrator; they differ in how the
L1 commitment covering the withdrawal is located and in the shape of the
reference passed to `proveWithdrawalTransaction`.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TransactionNotFound

from utils.chain import get_abi, get_contract_error_info
from utils.config import (
    ABI_DISPUTE_GAME_FACTORY,
    ABI_L2_OUTPUT_ORACLE,
    ABI_L2_TO_L1_MESSAGE_PASSER,
    ABI_OPTIMISM_PORTAL,
    ABI_OPTIMISM_PORTAL2,
    L2_TO_L1_MESSAGE_PASSER,
    NetworkProfile,
    VerificationStrategy,
)
from .custom_errors import (
    ConfigurationError,
    FinalizationNotReadyError,
    NotYetProvableError,
    WithdrawalReceiptError,
)
from .game_locator import GameLocator
from .messages import parse_withdrawal_event
from .proofs import WithdrawalProofBuilder, verify_output_root
from .submission import TransactionSubmitter
from .types import OutputRootRef, SubmissionResult, WithdrawalEvent

logger = logging.getLogger(__name__)

PROVE_ACTION = "prove withdrawal"
FINALIZE_ACTION = "finalize withdrawal"

PORTAL_ERROR_HINTS: Dict[str, str] = {
    "OptimismPortal_Unproven": "The withdrawal has not been proven by this account",
    "Unproven": "The withdrawal has not been proven by this account",
    "OptimismPortal_ProofNotOldEnough": "The proof has not passed the proof maturity delay yet",
    "OptimismPortal_InvalidProofTimestamp": "The proof was submitted before its dispute game was created",
    "OptimismPortal_InvalidRootClaim": "The dispute game's root claim was deemed invalid, prove the withdrawal again",
    "OptimismPortal_InvalidDisputeGame": "The dispute game is not proper (blacklisted, retired or paused)",
    "ProposalNotValidated": "The dispute game has not been resolved in favour of the root claim yet",
    "OptimismPortal_InvalidGameType": "The dispute game is not of the respected game type",
    "InvalidGameType": "The dispute game is not of the respected game type",
    "LegacyGame": "The dispute game predates the respected game type update, prove the withdrawal again",
    "OptimismPortal_AlreadyFinalized": "The withdrawal has already been finalized",
    "AlreadyFinalized": "The withdrawal has already been finalized",
}


def describe_portal_error(portal: Contract, error: ContractLogicError) -> str:
    error_info = get_contract_error_info(portal, error)

    if error_info:
        hint = PORTAL_ERROR_HINTS.get(error_info.name)
        return f"`{error_info.signature}`: {hint}" if hint else f"`{error_info.signature}`"

    return error.message or str(error)


class PortalWithdrawer(ABC):
    """
    Operations shared by both strategies: reading the withdrawal from its L2
    receipt, the finalized check and the finalize submission.

    Parameters
    ----------
    l2_provider : Web3

    l2_tx_hash : HexBytes
        Hash of the L2 transaction that called `initiateWithdrawal`.

    portal : Contract
        OptimismPortal (legacy) or OptimismPortal2 on L1.

    message_passer : Contract
        L2ToL1MessagePasser predeploy on L2.

    submitter : TransactionSubmitter
        Submits L1 transactions on behalf of the signer.

    proof_builder : WithdrawalProofBuilder, optional
    """

    def __init__(
        self,
        l2_provider: Web3,
        l2_tx_hash: HexBytes,
        portal: Contract,
        message_passer: Contract,
        submitter: TransactionSubmitter,
        proof_builder: Optional[WithdrawalProofBuilder] = None,
    ) -> None:
        self.l2_provider = l2_provider
        self.l2_tx_hash = HexBytes(l2_tx_hash)
        self.portal = portal
        self.message_passer = message_passer
        self.submitter = submitter
        self.proof_builder = proof_builder or WithdrawalProofBuilder(l2_provider)

    def withdrawal_event(self) -> WithdrawalEvent:
        try:
            receipt = self.l2_provider.eth.get_transaction_receipt(self.l2_tx_hash)
        except TransactionNotFound as e:
            raise WithdrawalReceiptError(
                f"Invalid receipt! Check if the txn_hash: {self.l2_tx_hash.to_0x_hex()} "
                "is correct and belongs to this L2.",
                e,
            ) from e

        return parse_withdrawal_event(self.message_passer, receipt)

    def is_finalized(self) -> bool:
        event = self.withdrawal_event()
        return self.portal.functions.finalizedWithdrawals(event.withdrawal_hash).call()

    @abstractmethod
    def check_provable(self) -> None: ...

    @abstractmethod
    def proven_at(self) -> int: ...

    @abstractmethod
    def prove(self) -> SubmissionResult: ...

    @abstractmethod
    def check_finalizable(self, event: WithdrawalEvent) -> None:
        """Raise `FinalizationNotReadyError` if the portal would refuse finalization now."""
        ...

    def finalize(self) -> SubmissionResult:
        event = self.withdrawal_event()
        self.check_finalizable(event)

        finalize_withdrawal_transaction = (
            self.portal.functions.finalizeWithdrawalTransaction(event.message)
        )

        return self.submitter.submit(FINALIZE_ACTION, finalize_withdrawal_transaction)


class DisputeGameWithdrawer(PortalWithdrawer):
    """
    Withdrawals on fault proof chains (`OptimismPortal2`). The proof must
    reference a dispute game whose proposed L2 block is at or after the
    block that included the withdrawal.
    """

    def __init__(
        self,
        l2_provider: Web3,
        l2_tx_hash: HexBytes,
        portal: Contract,
        message_passer: Contract,
        submitter: TransactionSubmitter,
        locator: GameLocator,
        proof_builder: Optional[WithdrawalProofBuilder] = None,
    ) -> None:
        super().__init__(
            l2_provider, l2_tx_hash, portal, message_passer, submitter, proof_builder
        )
        self.locator = locator

    def check_provable(self) -> None:
        event = self.withdrawal_event()
        latest_game = self.locator.latest_game()

        if latest_game.l2_block_number < event.l2_block_number:
            raise NotYetProvableError(
                f"The latest L2 block proposed in the DisputeGameFactory is "
                f"{latest_game.l2_block_number} and is not past L2 block "
                f"{event.l2_block_number} that includes the withdrawal - the "
                "withdrawal cannot be proven yet"
            )

    def proven_at(self) -> int:
        event = self.withdrawal_event()

        # proofs are stored per submitter
        proven_withdrawal = self.portal.functions.provenWithdrawals(
            event.withdrawal_hash, self.submitter.sender
        ).call()

        return proven_withdrawal[1]

    def prove(self) -> SubmissionResult:
        event = self.withdrawal_event()
        game = self.locator.find_earliest_game(event.l2_block_number)

        bundle = self.proof_builder.build(event.withdrawal_hash, game.l2_block_number)
        verify_output_root(bundle.output_root_proof, game.root_claim)

        print(
            f"Proving withdrawal from L2 block {event.l2_block_number} against "
            f"dispute game {game.index} (L2 block {game.l2_block_number})"
        )

        prove_withdrawal_transaction = self.portal.functions.proveWithdrawalTransaction(
            event.message,
            game.index,
            bundle.output_root_proof,
            bundle.withdrawal_proof,
        )

        return self.submitter.submit(PROVE_ACTION, prove_withdrawal_transaction)

    def check_finalizable(self, event: WithdrawalEvent) -> None:
        try:
            self.portal.functions.checkWithdrawal(
                event.withdrawal_hash, self.submitter.sender
            ).call()
        except ContractLogicError as e:
            raise FinalizationNotReadyError(
                f"Withdrawal {event.withdrawal_hash.to_0x_hex()} cannot be finalized yet: "
                f"{describe_portal_error(self.portal, e)}",
                e,
            ) from e


class OutputOracleWithdrawer(PortalWithdrawer):
    """
    Withdrawals on chains still using the `L2OutputOracle`. The proof must
    reference the first output proposal at or after the withdrawal's block.
    """

    def __init__(
        self,
        l2_provider: Web3,
        l2_tx_hash: HexBytes,
        portal: Contract,
        message_passer: Contract,
        submitter: TransactionSubmitter,
        output_oracle: Contract,
        proof_builder: Optional[WithdrawalProofBuilder] = None,
    ) -> None:
        super().__init__(
            l2_provider, l2_tx_hash, portal, message_passer, submitter, proof_builder
        )
        self.output_oracle = output_oracle

    def _not_yet_provable(self, latest_block: int, l2_block_number: int) -> NotYetProvableError:
        return NotYetProvableError(
            f"The latest L2 block proposed in the L2OutputOracle is {latest_block} "
            f"and is not past L2 block {l2_block_number} that includes the "
            "withdrawal - the withdrawal cannot be proven yet"
        )

    def check_provable(self) -> None:
        event = self.withdrawal_event()
        latest_block = self.output_oracle.functions.latestBlockNumber().call()

        if latest_block < event.l2_block_number:
            raise self._not_yet_provable(latest_block, event.l2_block_number)

    def proven_at(self) -> int:
        event = self.withdrawal_event()

        proven_withdrawal = self.portal.functions.provenWithdrawals(
            event.withdrawal_hash
        ).call()

        return proven_withdrawal[1]

    def find_output(self, l2_block_number: int) -> OutputRootRef:
        try:
            index = self.output_oracle.functions.getL2OutputIndexAfter(
                l2_block_number
            ).call()
        except ContractLogicError as e:
            latest_block = self.output_oracle.functions.latestBlockNumber().call()
            raise self._not_yet_provable(latest_block, l2_block_number) from e

        output = self.output_oracle.functions.getL2Output(index).call()

        return OutputRootRef(
            index=index,
            l2_block_number=output[2],
            output_root=bytes(output[0]),
            timestamp=output[1],
        )

    def prove(self) -> SubmissionResult:
        event = self.withdrawal_event()
        output = self.find_output(event.l2_block_number)

        if output.l2_block_number < event.l2_block_number:
            raise self._not_yet_provable(output.l2_block_number, event.l2_block_number)

        bundle = self.proof_builder.build(event.withdrawal_hash, output.l2_block_number)
        verify_output_root(bundle.output_root_proof, output.output_root)

        print(
            f"Proving withdrawal from L2 block {event.l2_block_number} against "
            f"output {output.index} (L2 block {output.l2_block_number})"
        )

        prove_withdrawal_transaction = self.portal.functions.proveWithdrawalTransaction(
            event.message,
            output.index,
            bundle.output_root_proof,
            bundle.withdrawal_proof,
        )

        return self.submitter.submit(PROVE_ACTION, prove_withdrawal_transaction)

    def check_finalizable(self, event: WithdrawalEvent) -> None:
        proven_withdrawal = self.portal.functions.provenWithdrawals(
            event.withdrawal_hash
        ).call()
        output_root, timestamp, l2_output_index = proven_withdrawal

        if timestamp == 0:
            raise FinalizationNotReadyError(
                f"Withdrawal {event.withdrawal_hash.to_0x_hex()} has not been proven"
            )

        if not self.portal.functions.isOutputFinalized(l2_output_index).call():
            raise FinalizationNotReadyError(
                f"Output {l2_output_index} used to prove withdrawal "
                f"{event.withdrawal_hash.to_0x_hex()} has not passed the finalization "
                "period yet"
            )

        output = self.output_oracle.functions.getL2Output(l2_output_index).call()
        if bytes(output[0]) != bytes(output_root):
            raise FinalizationNotReadyError(
                f"Output {l2_output_index} no longer matches the output root the "
                "withdrawal was proven against, prove the withdrawal again"
            )

        finalization_period = self.output_oracle.functions.FINALIZATION_PERIOD_SECONDS().call()
        latest_block = self.portal.w3.eth.get_block("latest")

        # the portal requires block.timestamp > proven timestamp + period
        if latest_block["timestamp"] - timestamp <= finalization_period:
            raise FinalizationNotReadyError(
                f"The proof has not passed the finalization period yet. Check again "
                f"after timestamp: {timestamp + finalization_period}"
            )


def create_withdrawer(
    profile: NetworkProfile,
    l1_provider: Web3,
    l2_provider: Web3,
    l2_tx_hash: HexBytes,
    submitter: TransactionSubmitter,
) -> PortalWithdrawer:
    """Bind the contracts of `profile` and return the matching strategy."""
    message_passer = l2_provider.eth.contract(
        L2_TO_L1_MESSAGE_PASSER, abi=get_abi(ABI_L2_TO_L1_MESSAGE_PASSER)
    )
    proof_builder = WithdrawalProofBuilder(l2_provider)
    logger.debug("Using %s strategy for network %s", profile.strategy, profile.name)

    if profile.strategy == VerificationStrategy.DISPUTE_GAME:
        if profile.dispute_game_factory_address is None:
            raise ConfigurationError(
                f"Network `{profile.name}` has no DisputeGameFactory address"
            )

        portal = l1_provider.eth.contract(
            profile.portal_address, abi=get_abi(ABI_OPTIMISM_PORTAL2)
        )
        factory = l1_provider.eth.contract(
            profile.dispute_game_factory_address, abi=get_abi(ABI_DISPUTE_GAME_FACTORY)
        )

        return DisputeGameWithdrawer(
            l2_provider,
            l2_tx_hash,
            portal,
            message_passer,
            submitter,
            GameLocator(factory, portal),
            proof_builder,
        )

    if profile.output_oracle_address is None:
        raise ConfigurationError(f"Network `{profile.name}` has no L2OutputOracle address")

    portal = l1_provider.eth.contract(
        profile.portal_address, abi=get_abi(ABI_OPTIMISM_PORTAL)
    )
    output_oracle = l1_provider.eth.contract(
        profile.output_oracle_address, abi=get_abi(ABI_L2_OUTPUT_ORACLE)
    )

    return OutputOracleWithdrawer(
        l2_provider,
        l2_tx_hash,
        portal,
        message_passer,
        submitter,
        output_oracle,
        proof_builder,
    )
