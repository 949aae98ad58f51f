"""Unit tests for SmartContractManager with a mocked node."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from eth_abi import encode

from onchaintestkit.constants import DEFAULT_DEV_ADDRESS, PROXY_ADDRESS
from onchaintestkit.contracts.manager import SmartContractManager
from onchaintestkit.exceptions import (
    AbiNotFoundError,
    ArtifactNotFoundError,
    ManagerNotInitializedError,
    SetupValidationError,
    TransactionFailedError,
)
from onchaintestkit.types import ContractCall, ContractDeployment, SetupConfig

TX_HASH = b"\x12" * 32
OTHER_ADDRESS = "0x" + "22" * 20


class FakeNode:
    """Node stand-in exposing a mocked RPC client."""

    def __init__(self):
        self.rpc = MagicMock()
        self.rpc.chain_id.return_value = 31337
        self.rpc.has_code.return_value = True


class UntouchableNode:
    @property
    def rpc(self):
        raise AssertionError("node must not be used")


@pytest.fixture
def manager(contracts_root: Path) -> SmartContractManager:
    return SmartContractManager(contracts_root)


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def initialized(manager: SmartContractManager, node: FakeNode, monkeypatch):
    """Manager bound to the fake node; outgoing transactions are recorded."""
    manager.initialize(node)
    sent = []

    def fake_send(tx):
        sent.append(tx)
        return TX_HASH

    monkeypatch.setattr(manager, "_send_transaction", fake_send)
    manager.sent = sent
    return manager


@pytest.fixture
def token_deployment(make_salt, initial_supply) -> ContractDeployment:
    return ContractDeployment(
        name="SimpleToken",
        salt=make_salt(1),
        deployer=DEFAULT_DEV_ADDRESS,
        args=[initial_supply],
    )


class TestInitialization:
    def test_requires_initialize(self, manager, token_deployment):
        assert not manager.is_initialized
        with pytest.raises(ManagerNotInitializedError):
            manager.deploy_contract(token_deployment)
        with pytest.raises(ManagerNotInitializedError):
            manager.w3

    def test_initialize_reads_chain_id_and_checks_proxy(self, manager, node):
        manager.initialize(node)

        assert manager.is_initialized
        assert manager.chain_id == 31337
        node.rpc.has_code.assert_called_with(PROXY_ADDRESS)

    def test_from_env(self, monkeypatch, contracts_root):
        monkeypatch.setenv("E2E_CONTRACT_PROJECT_ROOT", str(contracts_root))

        assert SmartContractManager.from_env().project_root == contracts_root


class TestPredictAddress:
    def test_needs_no_node(self, manager, make_salt, initial_supply, simple_token_address):
        assert manager.predict_address("SimpleToken", make_salt(1), [initial_supply]) == simple_token_address

    def test_missing_artifact(self, manager, make_salt):
        with pytest.raises(ArtifactNotFoundError):
            manager.predict_address("Missing", make_salt(1))


class TestDeployContract:
    def test_sends_salt_and_init_code_to_proxy(self, initialized, node, token_deployment,
                                               simple_token_address, initial_supply):
        node.rpc.has_code.side_effect = [False, True]

        address = initialized.deploy_contract(token_deployment)

        assert address == simple_token_address
        (tx,) = initialized.sent
        assert tx["from"] == DEFAULT_DEV_ADDRESS
        assert tx["to"] == PROXY_ADDRESS
        assert tx["value"] == 0
        creation = initialized.artifacts.load("SimpleToken").bytecode[2:]
        expected_data = "0x" + "00" * 31 + "01" + creation + encode(["uint256"], [initial_supply]).hex()
        assert tx["data"] == expected_data
        node.rpc.wait_for_receipt.assert_called_once()
        assert initialized.get_abi(address) == initialized.artifacts.load("SimpleToken").abi

    def test_existing_code_skips_transaction(self, initialized, node, token_deployment,
                                             simple_token_address):
        node.rpc.has_code.return_value = True

        address = initialized.deploy_contract(token_deployment)

        assert address == simple_token_address
        assert initialized.sent == []
        node.rpc.wait_for_receipt.assert_not_called()
        assert simple_token_address in initialized.deployed_contracts

    def test_no_code_after_receipt(self, initialized, node, token_deployment):
        node.rpc.has_code.side_effect = [False, False]

        with pytest.raises(TransactionFailedError, match="no code"):
            initialized.deploy_contract(token_deployment)
        assert initialized.deployed_contracts == {}

    def test_bad_salt(self, initialized, token_deployment):
        token_deployment.salt = "0x01"

        with pytest.raises(ValueError):
            initialized.deploy_contract(token_deployment)


class TestAbiRegistry:
    def test_unknown_address(self, manager):
        with pytest.raises(AbiNotFoundError, match="Deploy the contract first"):
            manager.get_abi(OTHER_ADDRESS)

    def test_lookup_is_case_insensitive(self, manager):
        manager.register_abi("0x" + "ab" * 20, [{"type": "function", "name": "f"}])

        assert manager.get_abi("0x" + "AB" * 20) == [{"type": "function", "name": "f"}]

    def test_deployed_contracts_is_a_copy(self, manager):
        manager.register_abi(OTHER_ADDRESS, [])
        manager.deployed_contracts.clear()

        assert len(manager.deployed_contracts) == 1

    def test_execute_call_on_unknown_target(self, initialized):
        with pytest.raises(AbiNotFoundError):
            initialized.execute_call(ContractCall(
                target=OTHER_ADDRESS, function_name="transfer", account=DEFAULT_DEV_ADDRESS,
            ))


class TestValidateConfig:
    def test_empty_config(self):
        with pytest.raises(SetupValidationError, match="at least deployments or calls"):
            SmartContractManager.validate_config(SetupConfig())

    @pytest.mark.parametrize("field", ["name", "salt", "deployer"])
    def test_deployment_missing_field(self, token_deployment, field):
        setattr(token_deployment, field, "")

        with pytest.raises(SetupValidationError, match="Deployment #0 must have name, salt, and deployer"):
            SmartContractManager.validate_config(SetupConfig(deployments=[token_deployment]))

    def test_deployment_salt_length(self, token_deployment):
        token_deployment.salt = "0x1234"

        with pytest.raises(SetupValidationError, match="Deployment #0"):
            SmartContractManager.validate_config(SetupConfig(deployments=[token_deployment]))

    @pytest.mark.parametrize("field", ["target", "function_name", "account"])
    def test_call_missing_field(self, field):
        call = ContractCall(target=OTHER_ADDRESS, function_name="transfer", account=DEFAULT_DEV_ADDRESS)
        setattr(call, field, "")

        with pytest.raises(SetupValidationError, match="Call #1 must have target, function_name, and account"):
            SmartContractManager.validate_config(SetupConfig(calls=[
                ContractCall(target=OTHER_ADDRESS, function_name="ok", account=DEFAULT_DEV_ADDRESS),
                call,
            ]))

    def test_calls_only_is_valid(self):
        SmartContractManager.validate_config(SetupConfig(calls=[
            ContractCall(target=OTHER_ADDRESS, function_name="f", account=DEFAULT_DEV_ADDRESS),
        ]))


class TestSetContractState:
    def test_validates_before_touching_node(self, manager):
        with pytest.raises(SetupValidationError):
            manager.set_contract_state(SetupConfig(), UntouchableNode())

        assert not manager.is_initialized

    def test_all_deployments_before_calls(self, manager, node, monkeypatch, token_deployment, make_salt):
        order = []
        monkeypatch.setattr(manager, "deploy_contract", lambda d: order.append(("deploy", d.salt)))
        monkeypatch.setattr(manager, "execute_call", lambda c: order.append(("call", c.function_name)))
        second = ContractDeployment(name="SimpleToken", salt=make_salt(2), deployer=DEFAULT_DEV_ADDRESS, args=[1])
        config = SetupConfig(
            deployments=[token_deployment, second],
            calls=[
                ContractCall(target=OTHER_ADDRESS, function_name="first", account=DEFAULT_DEV_ADDRESS),
                ContractCall(target=OTHER_ADDRESS, function_name="second", account=DEFAULT_DEV_ADDRESS),
            ],
        )

        manager.set_contract_state(config, node)

        assert manager.is_initialized
        assert order == [
            ("deploy", make_salt(1)),
            ("deploy", make_salt(2)),
            ("call", "first"),
            ("call", "second"),
        ]

    def test_does_not_reinitialize(self, manager, node, monkeypatch, token_deployment):
        manager.initialize(node)
        monkeypatch.setattr(manager, "deploy_contract", lambda d: None)

        manager.set_contract_state(SetupConfig(deployments=[token_deployment]), UntouchableNode())


class TestSendTransaction:
    @pytest.fixture
    def w3(self, manager, node):
        manager.initialize(node)
        w3 = node.rpc.w3
        w3.eth.get_transaction_count.return_value = 0
        w3.eth.estimate_gas.return_value = 100_000
        w3.eth.gas_price = 10**9
        w3.eth.send_raw_transaction.return_value = TX_HASH
        w3.eth.send_transaction.return_value = TX_HASH
        return w3

    def test_signs_locally_for_dev_key(self, manager, w3):
        tx_hash = manager._send_transaction({
            "from": DEFAULT_DEV_ADDRESS,
            "to": PROXY_ADDRESS,
            "data": "0x00",
            "value": 0,
        })

        assert tx_hash == TX_HASH
        w3.eth.send_raw_transaction.assert_called_once()
        w3.eth.send_transaction.assert_not_called()
        w3.eth.get_transaction_count.assert_called_once_with(DEFAULT_DEV_ADDRESS, "pending")

    def test_other_senders_use_node_signing(self, manager, w3):
        tx = {"from": "0x2222222222222222222222222222222222222222", "to": PROXY_ADDRESS, "value": 0}

        manager._send_transaction(tx)

        w3.eth.send_transaction.assert_called_once_with(tx)
        w3.eth.send_raw_transaction.assert_not_called()
