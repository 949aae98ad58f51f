"""
Smart Contract Manager

Deploys contracts at deterministic addresses through the CREATE2 proxy,
remembers the ABI of every contract it deployed, and runs post-deployment
calls against them.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from web3 import Web3

from ..constants import (
    DEFAULT_DEV_PRIVATE_KEY,
    DEFAULT_RECEIPT_TIMEOUT,
    ENV_PROJECT_ROOT,
    PROXY_ADDRESS,
)
from ..exceptions import (
    AbiNotFoundError,
    ManagerNotInitializedError,
    SetupValidationError,
    TransactionFailedError,
)
from ..node.manager import LocalNodeManager
from ..node.rpc import RpcClient
from ..types import ContractCall, ContractDeployment, SetupConfig
from .artifacts import ArtifactLoader
from .create2 import build_init_code, compute_create2_address, normalize_salt
from .proxy import ProxyDeployer

LOG = logging.getLogger(__name__)


class SmartContractManager:
    """
    Deploys contracts with CREATE2 and executes contract calls

    Usage:
        manager = SmartContractManager("/path/to/foundry/project")
        manager.initialize(node)
        token = manager.deploy_contract(ContractDeployment(
            name="SimpleToken", salt="0x" + "00" * 31 + "01", deployer=DEFAULT_DEV_ADDRESS,
        ))
        manager.execute_call(ContractCall(
            target=token, function_name="transfer", args=[to, 100], account=DEFAULT_DEV_ADDRESS,
        ))
    """

    def __init__(
        self,
        project_root: Union[Path, str],
        private_key: str = DEFAULT_DEV_PRIVATE_KEY,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        """
        Args:
            project_root: Foundry project holding the out/ build directory
            private_key: Key used to sign transactions sent from its address;
                         other senders must be unlocked or impersonated on the node
            receipt_timeout: Seconds to wait for each deployment to be mined
        """
        self.artifacts = ArtifactLoader(project_root)
        self.receipt_timeout = receipt_timeout
        self._signer: LocalAccount = Account.from_key(private_key)
        self._rpc: Optional[RpcClient] = None
        self._proxy: Optional[ProxyDeployer] = None
        self._chain_id: Optional[int] = None
        self._deployed_contracts: Dict[str, List[Dict[str, Any]]] = {}

    @classmethod
    def from_env(cls, **kwargs: Any) -> 'SmartContractManager':
        """Create a manager rooted at $E2E_CONTRACT_PROJECT_ROOT."""
        return cls(os.environ.get(ENV_PROJECT_ROOT, ''), **kwargs)

    @property
    def project_root(self) -> Path:
        return self.artifacts.project_root

    @property
    def is_initialized(self) -> bool:
        return self._rpc is not None and self._rpc.is_bound

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    @property
    def deployed_contracts(self) -> Dict[str, List[Dict[str, Any]]]:
        """Copy of the address -> ABI registry."""
        return dict(self._deployed_contracts)

    def initialize(self, node: LocalNodeManager) -> None:
        """
        Bind to a ready node and make sure the CREATE2 proxy exists

        Args:
            node: Running node manager
        """
        self._rpc = node.rpc
        self._chain_id = self._rpc.chain_id()
        self._proxy = ProxyDeployer(self._rpc, receipt_timeout=self.receipt_timeout)
        self._proxy.ensure_proxy_deployed()
        LOG.info(f"Contract manager initialized on chain {self._chain_id} ({self._rpc.rpc_url})")

    def _require_initialized(self) -> RpcClient:
        if not self.is_initialized or self._proxy is None:
            raise ManagerNotInitializedError(
                "SmartContractManager not initialized. Call initialize() first."
            )
        return self._rpc

    @property
    def w3(self) -> Web3:
        return self._require_initialized().w3

    # Registry

    def register_abi(self, address: str, abi: List[Dict[str, Any]]) -> None:
        self._deployed_contracts[to_checksum_address(address)] = abi

    def get_abi(self, address: str) -> List[Dict[str, Any]]:
        """
        Look up the ABI of a contract deployed in this session

        Raises:
            AbiNotFoundError: If nothing was deployed at the address
        """
        abi = self._deployed_contracts.get(to_checksum_address(address))
        if abi is None:
            raise AbiNotFoundError(
                f"ABI not found for contract at {address}. "
                "Deploy the contract first or provide the ABI."
            )
        return abi

    # Deployment

    def predict_address(self, name: str, salt: Union[str, bytes], args: Sequence[Any] = ()) -> str:
        """
        Predict where a contract will be deployed through the proxy

        Pure function of (proxy address, salt, init code); needs no node.
        """
        artifact = self.artifacts.load(name)
        init_code = build_init_code(artifact, args)
        return compute_create2_address(PROXY_ADDRESS, salt, init_code)

    def deploy_contract(self, deployment: ContractDeployment) -> str:
        """
        Deploy a contract at its CREATE2 address

        If code already exists at the predicted address no transaction is
        sent and the existing address is returned.

        Args:
            deployment: Contract name, constructor args, salt and deployer

        Returns:
            Checksummed contract address

        Raises:
            ArtifactNotFoundError: If the contract has not been built
            TransactionFailedError: If the deployment transaction reverted
        """
        rpc = self._require_initialized()
        artifact = self.artifacts.load(deployment.name)
        salt = normalize_salt(deployment.salt)
        init_code = build_init_code(artifact, deployment.args)
        predicted_address = compute_create2_address(self._proxy.proxy_address, salt, init_code)

        if rpc.has_code(predicted_address):
            LOG.info(f"Contract {deployment.name} already deployed at {predicted_address}")
            self.register_abi(predicted_address, artifact.abi)
            return predicted_address

        tx = {
            'from': to_checksum_address(deployment.deployer),
            'to': self._proxy.proxy_address,
            'data': Web3.to_hex(salt + init_code),
            'value': 0,
        }
        tx_hash = self._send_transaction(tx)
        rpc.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)

        if not rpc.has_code(predicted_address):
            raise TransactionFailedError(
                Web3.to_hex(tx_hash),
                f"Deployment of {deployment.name} mined but no code at {predicted_address}",
            )

        self.register_abi(predicted_address, artifact.abi)
        LOG.info(f"Deployed {deployment.name} to {predicted_address}")
        return predicted_address

    # Calls

    def execute_call(self, call: ContractCall) -> str:
        """
        Send a state-changing call to a deployed contract

        Returns as soon as the transaction is submitted; it is not awaited.

        Args:
            call: Target, function name, args, sender and optional value

        Returns:
            Transaction hash (0x-prefixed)

        Raises:
            AbiNotFoundError: If the target was not deployed in this session
        """
        self._require_initialized()
        abi = self.get_abi(call.target)
        contract = self.w3.eth.contract(address=to_checksum_address(call.target), abi=abi)

        params: Dict[str, Any] = {'from': to_checksum_address(call.account)}
        if call.value is not None:
            params['value'] = call.value

        tx = contract.functions[call.function_name](*call.args).build_transaction(params)
        tx_hash = Web3.to_hex(self._send_transaction(tx))
        LOG.info(f"Executed {call.function_name} on {call.target}, tx: {tx_hash}")
        return tx_hash

    def read(self, address: str, function_name: str, *args: Any) -> Any:
        """Call a view function on a deployed contract."""
        abi = self.get_abi(address)
        contract = self.w3.eth.contract(address=to_checksum_address(address), abi=abi)
        return contract.functions[function_name](*args).call()

    # Batches

    def set_contract_state(self, config: SetupConfig, node: LocalNodeManager) -> None:
        """
        Apply a batch of deployments followed by calls

        The config is validated before anything touches the node. Every
        deployment is mined before the first call is sent, so calls may
        target addresses deployed in the same batch.

        Args:
            config: Deployments and calls, each run in list order
            node: Node to initialize against if not yet initialized

        Raises:
            SetupValidationError: If the config is incomplete
        """
        self.validate_config(config)

        if not self.is_initialized:
            self.initialize(node)

        for deployment in config.deployments:
            self.deploy_contract(deployment)

        for call in config.calls:
            self.execute_call(call)

    @staticmethod
    def validate_config(config: SetupConfig) -> None:
        """
        Check a setup config for missing fields

        Raises:
            SetupValidationError: Describing the first problem found
        """
        if not config.deployments and not config.calls:
            raise SetupValidationError("Setup config must contain at least deployments or calls")

        for index, deployment in enumerate(config.deployments):
            if not deployment.name or not deployment.salt or not deployment.deployer:
                raise SetupValidationError(
                    f"Deployment #{index} must have name, salt, and deployer"
                )
            try:
                normalize_salt(deployment.salt)
            except ValueError as e:
                raise SetupValidationError(f"Deployment #{index} ({deployment.name}): {e}") from e

        for index, call in enumerate(config.calls):
            if not call.target or not call.function_name or not call.account:
                raise SetupValidationError(
                    f"Call #{index} must have target, function_name, and account"
                )

    # Transport

    def _send_transaction(self, tx: Dict[str, Any]):
        # Sign locally for our own key; otherwise the node signs for an
        # unlocked or impersonated account
        w3 = self.w3
        sender = tx['from']
        if sender != self._signer.address:
            return w3.eth.send_transaction(tx)

        tx = dict(tx)
        tx['nonce'] = w3.eth.get_transaction_count(sender, 'pending')
        tx['chainId'] = self._chain_id
        if 'gas' not in tx:
            tx['gas'] = w3.eth.estimate_gas(tx)
        if 'gasPrice' not in tx and 'maxFeePerGas' not in tx:
            tx['gasPrice'] = w3.eth.gas_price

        signed_tx = self._signer.sign_transaction(tx)
        return w3.eth.send_raw_transaction(signed_tx.raw_transaction)
