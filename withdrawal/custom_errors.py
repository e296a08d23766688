from typing import Optional

from hexbytes import HexBytes


class WithdrawalError(Exception):
    """Base Exception for withdrawal operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error
        # name of the lifecycle stage that raised, filled in by the orchestrator
        self.stage: Optional[str] = None


class ConfigurationError(WithdrawalError):
    """Raised when flags or settings are missing, incomplete or contradictory"""

    pass


class GasConfigError(ConfigurationError):
    """Raised when the declared gas policy violates its invariants"""

    pass


class SignerConfigurationError(ConfigurationError):
    """Raised when zero or several signer backends are selected, or a key can't be loaded"""

    pass


class NotYetProvableError(WithdrawalError):
    """Raised when no L1 commitment covers the withdrawal's L2 block yet"""

    pass


class NoGamesError(NotYetProvableError):
    """Raised when the dispute game factory holds no games at all"""

    pass


class NoQualifyingGameError(NotYetProvableError):
    """Raised when no game of the respected type covers the withdrawal's L2 block"""

    pass


class FinalizationNotReadyError(WithdrawalError):
    """Raised when the portal refuses finalization for now (proof not old enough, game unresolved, ...)"""

    pass


class WithdrawalReceiptError(WithdrawalError):
    """Raised when the L2 transaction is not a successful withdrawal initiation"""

    pass


class OutputRootMismatchError(WithdrawalError):
    """Raised when the locally computed output root differs from the L1 commitment"""

    pass


class SafetyCapExceededError(WithdrawalError):
    """Raised when a gas price is above the configured cap. Nothing is broadcast."""

    pass


class SignerAuthorizationError(WithdrawalError):
    """Raised when a signer is asked to sign for an address it doesn't control"""

    pass


class TransactionRevertedError(WithdrawalError):
    """Raised when a submitted transaction is mined with a failed status"""

    def __init__(self, tx_hash: HexBytes, original_error: Optional[Exception] = None):
        super().__init__(
            f"Transaction {HexBytes(tx_hash).to_0x_hex()} reverted", original_error
        )
        self.tx_hash = HexBytes(tx_hash)


class ConfirmationTimeoutError(WithdrawalError):
    """Raised when a submitted transaction isn't mined before the deadline"""

    def __init__(self, tx_hash: HexBytes, message: Optional[str] = None):
        super().__init__(
            message
            or f"Timed out waiting for {HexBytes(tx_hash).to_0x_hex()} to be mined"
        )
        self.tx_hash = HexBytes(tx_hash)


class ConfirmationCancelledError(ConfirmationTimeoutError):
    """Raised when the wait for a transaction is cancelled from outside"""

    def __init__(self, tx_hash: HexBytes):
        super().__init__(
            tx_hash,
            f"Stopped waiting for {HexBytes(tx_hash).to_0x_hex()}: cancelled",
        )


class WithdrawalStageError(WithdrawalError):
    """Raised when an unexpected (RPC, transport, ...) error interrupts a lifecycle stage"""

    def __init__(self, stage: str, original_error: Exception):
        super().__init__(f"{stage} failed: {original_error}", original_error)
        self.stage = stage
