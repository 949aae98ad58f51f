"""
Deterministic deployment proxy

Makes sure the well-known CREATE2 proxy exists on a node so that contracts
deployed through it land at the same address on every chain and every run.
"""

import logging

import rlp
from eth_account import Account
from eth_utils import decode_hex, to_checksum_address

from ..constants import DEFAULT_RECEIPT_TIMEOUT, PROXY_ADDRESS, PROXY_DEPLOYMENT_TX
from ..exceptions import ProxyDeploymentError
from ..node.rpc import RpcClient, to_quantity

LOG = logging.getLogger(__name__)


class ProxyDeployer:
    """Deploys and locates the deterministic deployment proxy."""

    def __init__(self, rpc: RpcClient, receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT):
        self.rpc = rpc
        self.receipt_timeout = receipt_timeout

    @property
    def proxy_address(self) -> str:
        return to_checksum_address(PROXY_ADDRESS)

    def get_proxy_address(self) -> str:
        return self.proxy_address

    def is_proxy_deployed(self) -> bool:
        """Check if code exists at the proxy address."""
        return self.rpc.has_code(self.proxy_address)

    def ensure_proxy_deployed(self) -> None:
        """
        Deploy the proxy unless it is already there

        Safe to call on every initialization.

        Raises:
            ProxyDeploymentError: If the pre-signed transaction fails
        """
        if self.is_proxy_deployed():
            LOG.debug(f"Deterministic deployment proxy already deployed at {self.proxy_address}")
            return

        try:
            self._fund_signer()
            tx_hash = self.rpc.send('eth_sendRawTransaction', [PROXY_DEPLOYMENT_TX])
            LOG.info(f"Deploying deterministic deployment proxy, tx hash: {tx_hash}")
            self.rpc.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            raise ProxyDeploymentError(
                f"Failed to deploy deterministic deployment proxy: {e}"
            ) from e

        if not self.is_proxy_deployed():
            raise ProxyDeploymentError(
                f"Proxy deployment mined but no code at {self.proxy_address}"
            )
        LOG.info(f"Deterministic deployment proxy deployed at {self.proxy_address}")

    def _fund_signer(self) -> None:
        # The pre-signed transaction pays gasLimit * gasPrice from a keyless
        # sender; top it up on nodes that do not pre-fund it
        signer = Account.recover_transaction(PROXY_DEPLOYMENT_TX)
        fields = rlp.decode(decode_hex(PROXY_DEPLOYMENT_TX))
        gas_price = int.from_bytes(fields[1], 'big')
        gas_limit = int.from_bytes(fields[2], 'big')
        required = gas_price * gas_limit

        if self.rpc.get_balance(signer) < required:
            LOG.debug(f"Funding proxy deployment signer {signer} with {required} wei")
            self.rpc.send('anvil_setBalance', [signer, to_quantity(required)])
