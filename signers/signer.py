"""
Signing backends behind one capability surface: an address, a chain-bound
transaction signing function and EIP-191 message signing.

Hardware devices are discovered and opened elsewhere; `HardwareWalletSigner`
only wraps a device that is already open.
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes

from utils.config import DEFAULT_HD_PATH
from withdrawal.custom_errors import (
    SignerAuthorizationError,
    SignerConfigurationError,
)

logger = logging.getLogger(__name__)

SignerFn = Callable[[str, Dict[str, Any]], HexBytes]


class Signer(Protocol):
    @property
    def address(self) -> ChecksumAddress: ...

    def signer_fn(self, chain_id: int) -> SignerFn:
        """Returns a function signing a transaction dict into raw bytes for `chain_id`."""
        ...

    def sign_data(self, data: bytes) -> bytes:
        """Signs `data` with the EIP-191 personal message prefix."""
        ...


class HardwareWallet(Protocol):
    """An opened hardware device session."""

    def derive(self, hd_path: str) -> str: ...

    def sign_transaction(
        self, hd_path: str, transaction: Dict[str, Any], chain_id: int
    ) -> bytes: ...

    def sign_text(self, hd_path: str, data: bytes) -> bytes: ...


def _ensure_authorized(expected: ChecksumAddress, address: str) -> None:
    if to_checksum_address(address) != expected:
        raise SignerAuthorizationError(
            f"Not authorized to sign for {address}, signer is {expected}"
        )


class LocalKeySigner:
    """
    Signs with a private key held in memory, either given directly or derived
    from a mnemonic.
    """

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @property
    def address(self) -> ChecksumAddress:
        return to_checksum_address(self._account.address)

    def signer_fn(self, chain_id: int) -> SignerFn:
        def sign(address: str, transaction: Dict[str, Any]) -> HexBytes:
            _ensure_authorized(self.address, address)
            signed = self._account.sign_transaction({**transaction, "chainId": chain_id})
            return HexBytes(signed.raw_transaction)

        return sign

    def sign_data(self, data: bytes) -> bytes:
        signed = self._account.sign_message(encode_defunct(primitive=data))
        return bytes(signed.signature)

    @classmethod
    def from_private_key(cls, private_key: str) -> "LocalKeySigner":
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key

        try:
            account: LocalAccount = Account.from_key(private_key)
        except Exception as e:
            raise SignerConfigurationError(f"Error parsing private key: {e}", e) from e

        return cls(account)

    @classmethod
    def from_mnemonic(
        cls, mnemonic: str, hd_path: str = DEFAULT_HD_PATH
    ) -> "LocalKeySigner":
        Account.enable_unaudited_hdwallet_features()

        try:
            account: LocalAccount = Account.from_mnemonic(
                mnemonic, account_path=hd_path
            )
        except Exception as e:
            raise SignerConfigurationError(
                f"Error deriving key from mnemonic: {e}", e
            ) from e

        return cls(account)

    def __repr__(self) -> str:
        return f"LocalKeySigner(address={self.address})"


class HardwareWalletSigner:
    """
    Delegates signing to an opened hardware device. The account is derived
    once, when the signer is created, and every later request must be for
    that same address.
    """

    def __init__(self, wallet: HardwareWallet, hd_path: str = DEFAULT_HD_PATH) -> None:
        self._wallet = wallet
        self.hd_path = hd_path

        try:
            self._address = to_checksum_address(wallet.derive(hd_path))
        except Exception as e:
            raise SignerConfigurationError(
                f"Error deriving hardware wallet account at {hd_path} "
                f"(check that the Ethereum app is open): {e}",
                e,
            ) from e

        logger.info("Hardware wallet account %s at %s", self._address, hd_path)

    @property
    def address(self) -> ChecksumAddress:
        return self._address

    def signer_fn(self, chain_id: int) -> SignerFn:
        def sign(address: str, transaction: Dict[str, Any]) -> HexBytes:
            _ensure_authorized(self._address, address)
            unsigned = {k: v for k, v in transaction.items() if k != "from"}
            unsigned["chainId"] = chain_id
            return HexBytes(self._wallet.sign_transaction(self.hd_path, unsigned, chain_id))

        return sign

    def sign_data(self, data: bytes) -> bytes:
        # the device applies the EIP-191 prefix itself
        return bytes(self._wallet.sign_text(self.hd_path, data))

    def __repr__(self) -> str:
        return f"HardwareWalletSigner(address={self._address}, hd_path={self.hd_path})"


def create_signer(
    private_key: Optional[str] = None,
    mnemonic: Optional[str] = None,
    hd_path: str = DEFAULT_HD_PATH,
    hardware_wallet: Optional[HardwareWallet] = None,
) -> Signer:
    """
    Create a signer from exactly one backend.

    Args:
        private_key: Hex-encoded private key (with or without 0x prefix)
        mnemonic: BIP-39 phrase, derived along `hd_path`
        hd_path: Derivation path for the mnemonic or hardware wallet
        hardware_wallet: An already opened hardware device

    Raises:
        SignerConfigurationError: If zero or several backends are selected
    """
    selected = [
        name
        for name, given in (
            ("private key", bool(private_key)),
            ("mnemonic", bool(mnemonic)),
            ("hardware wallet", hardware_wallet is not None),
        )
        if given
    ]

    if not selected:
        raise SignerConfigurationError(
            "No signer configured: provide a private key, a mnemonic or a hardware wallet"
        )

    if len(selected) > 1:
        raise SignerConfigurationError(
            f"Only one signer may be configured, got: {', '.join(selected)}"
        )

    if private_key:
        return LocalKeySigner.from_private_key(private_key)

    if mnemonic:
        return LocalKeySigner.from_mnemonic(mnemonic, hd_path)

    return HardwareWalletSigner(hardware_wallet, hd_path)  # type: ignore[arg-type]
