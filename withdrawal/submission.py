import logging
from typing import Mapping

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import ContractFunction

from signers.signer import Signer
from utils.config import DRY_RUN_DATA_PREVIEW_CHARS
from .confirmation import ConfirmationWaiter
from .gas_planner import GasPlanner, enforce_price_cap
from .types import DryRunPreview, GasConfig, SubmissionResult

logger = logging.getLogger(__name__)


def build_dry_run_preview(action: str, txn: Mapping) -> DryRunPreview:
    gas = int(txn.get("gas", 0))
    gas_price = txn.get("gasPrice")
    max_fee = txn.get("maxFeePerGas")
    max_priority_fee = txn.get("maxPriorityFeePerGas")

    # EIP-1559 cost is an upper bound: the base fee may settle lower
    price = max_fee if max_fee is not None else gas_price
    estimated_cost = gas * int(price) if price is not None else 0

    to = txn.get("to")

    return DryRunPreview(
        action=action,
        sender=to_checksum_address(txn["from"]),
        to=to_checksum_address(to) if to else None,
        value=int(txn.get("value", 0)),
        gas=gas,
        gas_price=int(gas_price) if gas_price is not None else None,
        max_fee_per_gas=int(max_fee) if max_fee is not None else None,
        max_priority_fee_per_gas=(
            int(max_priority_fee) if max_priority_fee is not None else None
        ),
        estimated_cost_wei=estimated_cost,
        data=HexBytes(txn.get("data", b"")),
    )


def format_dry_run(preview: DryRunPreview) -> str:
    lines = [
        "=== DRY RUN ===",
        f"Action:         {preview.action}",
        f"From:           {preview.sender}",
    ]

    if preview.to is not None:
        lines.append(f"To:             {preview.to}")

    lines.append(f"Value:          {Web3.from_wei(preview.value, 'ether'):.8f} ETH")
    lines.append(f"Estimated Gas:  {preview.gas}")

    cost_eth = f"{Web3.from_wei(preview.estimated_cost_wei, 'ether'):.8f}"
    if preview.max_fee_per_gas is not None:
        lines.append(f"Max Fee:        {preview.max_fee_per_gas} wei")
        lines.append(f"Max Priority:   {preview.max_priority_fee_per_gas} wei")
        lines.append(f"Max Cost:       {cost_eth} ETH")
    else:
        lines.append(f"Gas Price:      {preview.gas_price} wei")
        lines.append(f"Estimated Cost: {cost_eth} ETH")

    data = preview.data.hex()
    if len(data) > DRY_RUN_DATA_PREVIEW_CHARS:
        data = data[:DRY_RUN_DATA_PREVIEW_CHARS] + "..."
    lines.append(f"Tx Data:        0x{data}")
    lines.append("===============")

    return "\n".join(lines)


class TransactionSubmitter:
    """
    Resolves gas, builds, signs and broadcasts one L1 transaction, then waits
    for it to be mined. In dry-run mode it stops after building and returns a
    preview instead.

    Parameters
    ----------
    `l1_provider` : Web3
    `signer` : Signer
    `gas_planner` : GasPlanner
    `gas_config` : GasConfig
        The user-declared policy. Every submission starts from it again.
    `waiter` : ConfirmationWaiter
    `dry_run` : bool
    """

    def __init__(
        self,
        l1_provider: Web3,
        signer: Signer,
        gas_planner: GasPlanner,
        gas_config: GasConfig,
        waiter: ConfirmationWaiter,
        dry_run: bool = False,
    ) -> None:
        self.l1_provider = l1_provider
        self.signer = signer
        self.gas_planner = gas_planner
        self.gas_config = gas_config
        self.waiter = waiter
        self.dry_run = dry_run

    @property
    def sender(self) -> ChecksumAddress:
        return self.signer.address

    def submit(self, action: str, contract_fn: ContractFunction) -> SubmissionResult:
        sender = self.sender

        def simulate() -> int:
            return contract_fn.estimate_gas({"from": sender})

        params = self.gas_planner.resolve(self.gas_config, simulate)

        chain_id = self.l1_provider.eth.chain_id
        params.update(
            {
                "from": sender,
                "nonce": self.l1_provider.eth.get_transaction_count(sender, "pending"),
                "chainId": chain_id,
            }
        )

        txn = contract_fn.build_transaction(params)
        enforce_price_cap(txn, self.gas_config.max_gas_price)

        if self.dry_run:
            preview = build_dry_run_preview(action, txn)
            print(format_dry_run(preview))
            return SubmissionResult(action=action, preview=preview)

        raw_transaction = self.signer.signer_fn(chain_id)(sender, dict(txn))
        tx_hash = HexBytes(self.l1_provider.eth.send_raw_transaction(raw_transaction))

        print("-" * 75)
        print(f"{action}: {tx_hash.to_0x_hex()}")
        print("-" * 75)
        logger.info("Broadcast %s from %s: %s", action, sender, tx_hash.to_0x_hex())

        self.waiter.wait_for_success(tx_hash)

        return SubmissionResult(action=action, tx_hash=tx_hash)
