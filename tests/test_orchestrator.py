"""
Tests for the lifecycle decision policy.
"""
from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes
from hypothesis import given, strategies as st

from withdrawal.custom_errors import (
    FinalizationNotReadyError,
    NoQualifyingGameError,
    NotYetProvableError,
    OutputRootMismatchError,
    WithdrawalStageError,
)
from withdrawal.orchestrator import WithdrawalOrchestrator
from withdrawal.types import (
    DryRunPreview,
    LifecycleState,
    SubmissionResult,
    WithdrawalAction,
)

TX_HASH = HexBytes("0x" + "ef" * 32)


def make_withdrawer(finalized=False, proven_at=0, provable=True, finalizable=True):
    withdrawer = MagicMock()
    withdrawer.is_finalized.return_value = finalized
    withdrawer.proven_at.return_value = proven_at
    withdrawer.prove.return_value = SubmissionResult("prove withdrawal", tx_hash=TX_HASH)
    withdrawer.finalize.return_value = SubmissionResult("finalize withdrawal", tx_hash=TX_HASH)

    if not provable:
        withdrawer.check_provable.side_effect = NotYetProvableError("no game covers block 100")
    if not finalizable:
        withdrawer.finalize.side_effect = FinalizationNotReadyError("proof not old enough")

    return withdrawer


def preview(action):
    return DryRunPreview(
        action=action,
        sender="0x" + "11" * 20,
        to=None,
        value=0,
        gas=0,
        gas_price=None,
        max_fee_per_gas=None,
        max_priority_fee_per_gas=None,
        estimated_cost_wei=0,
        data=HexBytes(b""),
    )


def test_already_finalized_is_a_no_op():
    withdrawer = make_withdrawer(finalized=True)

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.FINALIZED
    assert outcome.action == WithdrawalAction.NONE
    withdrawer.proven_at.assert_not_called()
    withdrawer.prove.assert_not_called()
    withdrawer.finalize.assert_not_called()


def test_unproven_withdrawal_is_proven():
    withdrawer = make_withdrawer()

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.PROVEN
    assert outcome.action == WithdrawalAction.PROVE
    assert outcome.tx_hash == TX_HASH
    withdrawer.check_provable.assert_called_once()
    withdrawer.prove.assert_called_once()
    withdrawer.finalize.assert_not_called()


def test_not_yet_provable_is_reported():
    withdrawer = make_withdrawer(provable=False)

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.NOT_YET_PROVABLE
    assert "block 100" in outcome.reason
    withdrawer.prove.assert_not_called()


def test_no_qualifying_game_during_prove_is_reported():
    withdrawer = make_withdrawer()
    withdrawer.prove.side_effect = NoQualifyingGameError("no respected game yet")

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.NOT_YET_PROVABLE


def test_proven_withdrawal_is_finalized():
    withdrawer = make_withdrawer(proven_at=1_700_000_000)

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.FINALIZED
    assert outcome.action == WithdrawalAction.FINALIZE
    assert outcome.tx_hash == TX_HASH
    withdrawer.check_provable.assert_not_called()
    withdrawer.prove.assert_not_called()


def test_finalization_not_ready_is_reported():
    withdrawer = make_withdrawer(proven_at=1_700_000_000, finalizable=False)

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.PROVEN
    assert outcome.action == WithdrawalAction.NONE
    assert outcome.reason == "proof not old enough"


def test_dry_run_outcomes_carry_preview():
    withdrawer = make_withdrawer()
    withdrawer.prove.return_value = SubmissionResult("prove withdrawal", preview=preview("prove withdrawal"))

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.UNPROVEN
    assert outcome.action == WithdrawalAction.PROVE
    assert outcome.tx_hash is None
    assert outcome.preview.action == "prove withdrawal"

    withdrawer = make_withdrawer(proven_at=1)
    withdrawer.finalize.return_value = SubmissionResult(
        "finalize withdrawal", preview=preview("finalize withdrawal")
    )

    outcome = WithdrawalOrchestrator(withdrawer).run()

    assert outcome.state == LifecycleState.PROVEN
    assert outcome.action == WithdrawalAction.FINALIZE
    assert outcome.preview is not None


def test_transport_errors_are_wrapped_with_stage():
    withdrawer = make_withdrawer()
    rpc_error = ConnectionError("connection refused")
    withdrawer.is_finalized.side_effect = rpc_error

    with pytest.raises(WithdrawalStageError) as exc_info:
        WithdrawalOrchestrator(withdrawer).run()

    assert exc_info.value.stage == "is_finalized"
    assert exc_info.value.original_error is rpc_error
    assert exc_info.value.__cause__ is rpc_error


def test_withdrawal_errors_propagate_with_stage():
    withdrawer = make_withdrawer()
    withdrawer.prove.side_effect = OutputRootMismatchError("claim mismatch")

    with pytest.raises(OutputRootMismatchError) as exc_info:
        WithdrawalOrchestrator(withdrawer).run()

    assert exc_info.value.stage == "prove"


@given(
    finalized=st.booleans(),
    proven_at=st.sampled_from([0, 1, 1_700_000_000]),
    provable=st.booleans(),
    finalizable=st.booleans(),
)
def test_at_most_one_state_changing_call(finalized, proven_at, provable, finalizable):
    withdrawer = make_withdrawer(finalized, proven_at, provable, finalizable)

    WithdrawalOrchestrator(withdrawer).run()

    writes = withdrawer.prove.call_count + withdrawer.finalize.call_count
    assert writes <= 1

    if finalized:
        assert writes == 0
