"""
JSON-RPC control client for a local node

Thin request/response wrapper around a web3 HTTP provider. Quantities that
represent wei or gas are hex-encoded here so callers can pass Python ints.
"""

import logging
from typing import Any, List, Optional, Union

import requests
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers.rpc import HTTPProvider

from ..constants import DEFAULT_RECEIPT_TIMEOUT, DEFAULT_RPC_TIMEOUT
from ..exceptions import NodeNotStartedError, RpcError, TransactionFailedError

LOG = logging.getLogger(__name__)


def to_quantity(value: int) -> str:
    """Encode an integer as a 0x-prefixed hex quantity ("0x0" for zero)."""
    if value < 0:
        raise ValueError(f"Quantity must be non-negative, got {value}")
    return Web3.to_hex(value)


def _local_session() -> requests.Session:
    # Local node traffic must not go through HTTP(S)_PROXY settings
    session = requests.Session()
    session.proxies = {
        'http': None,
        'https': None,
    }
    session.trust_env = False
    return session


class RpcClient:
    """
    Request/response transport bound to one node endpoint

    Usage:
        rpc = RpcClient("http://127.0.0.1:8545")
        snapshot_id = rpc.send("evm_snapshot")
        rpc.close()
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        poa: bool = False,
    ):
        """
        Args:
            rpc_url: HTTP endpoint of the node
            timeout: Per-request timeout in seconds
            poa: Inject the extraData middleware (forks of proof-of-authority chains)
        """
        self._rpc_url: Optional[str] = rpc_url
        provider = HTTPProvider(
            rpc_url,
            session=_local_session(),
            request_kwargs={'timeout': timeout},
            exception_retry_configuration=None,
        )
        self._w3: Optional[Web3] = Web3(provider)
        if poa:
            self._w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

    @property
    def rpc_url(self) -> str:
        if self._rpc_url is None:
            raise NodeNotStartedError()
        return self._rpc_url

    @property
    def w3(self) -> Web3:
        """The bound Web3 instance."""
        if self._w3 is None:
            raise NodeNotStartedError()
        return self._w3

    @property
    def is_bound(self) -> bool:
        return self._w3 is not None

    def close(self) -> None:
        """Unbind from the endpoint; later calls fail with NodeNotStartedError."""
        self._w3 = None
        self._rpc_url = None

    def send(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send one JSON-RPC request

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            The "result" member of the response

        Raises:
            NodeNotStartedError: If the client is not bound
            RpcError: If the node returned an error object
        """
        response = self.w3.provider.make_request(method, params or [])
        if 'error' in response:
            raise RpcError(method, response['error'])
        return response.get('result')

    def is_connected(self) -> bool:
        if self._w3 is None:
            return False
        return self._w3.is_connected()

    # Queries

    def chain_id(self) -> int:
        return int(self.send('eth_chainId'), 16)

    def block_number(self) -> int:
        return int(self.send('eth_blockNumber'), 16)

    def get_code(self, address: str) -> HexBytes:
        """Return the runtime code at an address (empty for EOAs and unused addresses)."""
        return self.w3.eth.get_code(to_checksum_address(address))

    def has_code(self, address: str) -> bool:
        return len(self.get_code(address)) > 0

    def get_balance(self, address: str) -> int:
        return self.w3.eth.get_balance(to_checksum_address(address))

    def wait_for_receipt(
        self,
        tx_hash: Union[str, bytes],
        timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> Any:
        """
        Wait for a transaction to be mined

        Raises:
            TransactionFailedError: If the receipt reports status 0
            web3.exceptions.TimeExhausted: If not mined within timeout
        """
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        if receipt['status'] != 1:
            tx_hex = Web3.to_hex(tx_hash) if isinstance(tx_hash, bytes) else tx_hash
            raise TransactionFailedError(
                tx_hex, f"Transaction {tx_hex} reverted (status {receipt['status']})"
            )
        return receipt
