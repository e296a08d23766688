"""
Tests for network resolution, providers and chain helpers.
"""
import os

import pytest
from web3 import Web3
from web3.exceptions import ContractCustomError

from utils.chain import ABI_DIR, apply_gas_multiplier, get_abi, get_contract_error_info
from utils.config import (
    ABI_DISPUTE_GAME_FACTORY,
    ABI_L2_OUTPUT_ORACLE,
    ABI_L2_TO_L1_MESSAGE_PASSER,
    ABI_OPTIMISM_PORTAL,
    ABI_OPTIMISM_PORTAL2,
    NETWORK_PROFILES,
    NetworkName,
    VerificationStrategy,
    resolve_network_profile,
)
from utils.providers import get_l1_web3, get_web3
from withdrawal.custom_errors import ConfigurationError

PORTAL = "0x" + "12" * 20
ORACLE = "0x" + "34" * 20
FACTORY = "0x" + "56" * 20
L2_RPC = "http://localhost:9545"


@pytest.mark.parametrize("network", list(NetworkName))
def test_preset_networks(network):
    profile = resolve_network_profile(network=network.value)

    assert profile == NETWORK_PROFILES[network]
    assert profile.strategy == VerificationStrategy.DISPUTE_GAME
    assert profile.dispute_game_factory_address is not None
    assert profile.output_oracle_address is None


def test_unknown_network():
    with pytest.raises(ConfigurationError):
        resolve_network_profile(network="zora-mainnet")


def test_network_required():
    with pytest.raises(ConfigurationError):
        resolve_network_profile()


def test_network_excludes_custom_bundle():
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_network_profile(network="op-mainnet", portal_address=PORTAL)

    assert "--portal-address" in str(exc_info.value)


def test_custom_output_oracle_network():
    profile = resolve_network_profile(
        l2_rpc_url=L2_RPC, portal_address=PORTAL, output_oracle_address=ORACLE
    )

    assert profile.strategy == VerificationStrategy.OUTPUT_ORACLE
    assert profile.l2_rpc_url == L2_RPC
    assert profile.portal_address == Web3.to_checksum_address(PORTAL)
    assert profile.output_oracle_address == Web3.to_checksum_address(ORACLE)
    assert profile.dispute_game_factory_address is None


def test_custom_dispute_game_network():
    profile = resolve_network_profile(
        l2_rpc_url=L2_RPC, portal_address=PORTAL, dispute_game_factory_address=FACTORY
    )

    assert profile.strategy == VerificationStrategy.DISPUTE_GAME
    assert profile.dispute_game_factory_address == Web3.to_checksum_address(FACTORY)


@pytest.mark.parametrize(
    "kwargs, missing",
    [
        ({"portal_address": PORTAL, "output_oracle_address": ORACLE}, "--l2-rpc"),
        ({"l2_rpc_url": L2_RPC, "dispute_game_factory_address": FACTORY}, "--portal-address"),
        ({"l2_rpc_url": L2_RPC, "portal_address": PORTAL}, "--l2oo-address or --dgf-address"),
    ],
)
def test_custom_network_is_all_or_nothing(kwargs, missing):
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_network_profile(**kwargs)

    assert missing in str(exc_info.value)


def test_custom_network_single_verification_contract():
    with pytest.raises(ConfigurationError):
        resolve_network_profile(
            l2_rpc_url=L2_RPC,
            portal_address=PORTAL,
            output_oracle_address=ORACLE,
            dispute_game_factory_address=FACTORY,
        )


def test_custom_network_invalid_address():
    with pytest.raises(ConfigurationError):
        resolve_network_profile(
            l2_rpc_url=L2_RPC, portal_address="0x1234", output_oracle_address=ORACLE
        )


@pytest.mark.parametrize(
    "name",
    [
        ABI_OPTIMISM_PORTAL,
        ABI_OPTIMISM_PORTAL2,
        ABI_L2_OUTPUT_ORACLE,
        ABI_DISPUTE_GAME_FACTORY,
        ABI_L2_TO_L1_MESSAGE_PASSER,
    ],
)
def test_get_abi(name):
    abi = get_abi(name)

    assert isinstance(abi, list)
    assert abi
    assert get_abi(os.path.join(ABI_DIR, name)) == abi


def test_get_abi_missing():
    with pytest.raises(FileNotFoundError):
        get_abi("Missing.json")


def test_apply_gas_multiplier():
    assert apply_gas_multiplier(100_000, 1.0) == 100_000
    assert apply_gas_multiplier(100_000, 1.5) == 150_000

    with pytest.raises(ValueError):
        apply_gas_multiplier(100_000, 0.5)


def test_get_contract_error_info():
    portal = get_web3(L2_RPC).eth.contract(abi=get_abi(ABI_OPTIMISM_PORTAL2))
    selector = Web3.keccak(text="OptimismPortal_Unproven()")[:4].to_0x_hex()

    info = get_contract_error_info(portal, ContractCustomError(selector, data=selector))

    assert info is not None
    assert info.name == "OptimismPortal_Unproven"
    assert info.signature == "OptimismPortal_Unproven()"
    assert info.selector == selector

    assert get_contract_error_info(portal, ContractCustomError("0xdeadbeef", data="0xdeadbeef")) is None
    assert get_contract_error_info(portal, ValueError("not a contract error")) is None


def test_get_web3_requires_url():
    with pytest.raises(ConfigurationError):
        get_web3("")

    assert isinstance(get_web3(L2_RPC), Web3)


def test_get_l1_web3_from_env(monkeypatch):
    monkeypatch.setenv("L1_RPC_URL", "http://localhost:8545")
    assert get_l1_web3().provider.endpoint_uri == "http://localhost:8545"

    monkeypatch.delenv("L1_RPC_URL")
    with pytest.raises(ConfigurationError):
        get_l1_web3()

    assert get_l1_web3("http://localhost:8546").provider.endpoint_uri == "http://localhost:8546"
