import logging
from typing import Callable, Protocol, TypeVar

from .custom_errors import (
    FinalizationNotReadyError,
    NotYetProvableError,
    WithdrawalError,
    WithdrawalStageError,
)
from .types import (
    LifecycleState,
    SubmissionResult,
    WithdrawalAction,
    WithdrawalOutcome,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WithdrawHelper(Protocol):
    def is_finalized(self) -> bool: ...

    def check_provable(self) -> None: ...

    def proven_at(self) -> int: ...

    def prove(self) -> SubmissionResult: ...

    def finalize(self) -> SubmissionResult: ...


class WithdrawalOrchestrator:
    """
    Decides and performs the single next step of a withdrawal.

    State is read from chain on every run and never cached between runs:

    * finalized on L1 -> nothing to do.
    * not proven -> prove it, if a commitment covering its block exists.
    * proven -> finalize it, if the portal accepts finalization now.

    At most one state-changing transaction is submitted per run. Waiting
    conditions (nothing to prove against yet, proof not matured) are reported
    through the returned `WithdrawalOutcome` rather than raised.

    Parameters
    ----------
    `withdrawer` : WithdrawHelper
        Strategy bound to one withdrawal, see `withdrawal.op_stack`.
    """

    def __init__(self, withdrawer: WithdrawHelper) -> None:
        self.withdrawer = withdrawer

    def _stage(self, stage: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except WithdrawalError as e:
            if e.stage is None:
                e.stage = stage
            raise
        except Exception as e:
            raise WithdrawalStageError(stage, e) from e

    def run(self) -> WithdrawalOutcome:
        if self._stage("is_finalized", self.withdrawer.is_finalized):
            print("Withdrawal is already finalized")
            return WithdrawalOutcome(state=LifecycleState.FINALIZED)

        proven_at = self._stage("proven_at", self.withdrawer.proven_at)

        if proven_at == 0:
            return self._prove()

        logger.info("Withdrawal proven at timestamp %d", proven_at)
        return self._finalize()

    def _prove(self) -> WithdrawalOutcome:
        try:
            self._stage("check_provable", self.withdrawer.check_provable)
            result = self._stage("prove", self.withdrawer.prove)
        except NotYetProvableError as e:
            print(f"Withdrawal is not provable yet: {e}")
            return WithdrawalOutcome(
                state=LifecycleState.NOT_YET_PROVABLE, reason=str(e)
            )

        if result.preview is not None:
            return WithdrawalOutcome(
                state=LifecycleState.UNPROVEN,
                action=WithdrawalAction.PROVE,
                preview=result.preview,
            )

        print(
            "The withdrawal has been proven! Run again after the finalization "
            "period to finalize it."
        )
        return WithdrawalOutcome(
            state=LifecycleState.PROVEN,
            action=WithdrawalAction.PROVE,
            tx_hash=result.tx_hash,
        )

    def _finalize(self) -> WithdrawalOutcome:
        try:
            result = self._stage("finalize", self.withdrawer.finalize)
        except FinalizationNotReadyError as e:
            print(f"Withdrawal is proven but can't be finalized yet: {e}")
            return WithdrawalOutcome(state=LifecycleState.PROVEN, reason=str(e))

        if result.preview is not None:
            return WithdrawalOutcome(
                state=LifecycleState.PROVEN,
                action=WithdrawalAction.FINALIZE,
                preview=result.preview,
            )

        print("The withdrawal has been finalized!")
        return WithdrawalOutcome(
            state=LifecycleState.FINALIZED,
            action=WithdrawalAction.FINALIZE,
            tx_hash=result.tx_hash,
        )
