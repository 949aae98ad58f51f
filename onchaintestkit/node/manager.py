"""
Local Node Manager

Responsibilities:
1. Spawn and supervise an Anvil process on a collision-free port
2. Detect readiness from the process output and bind an RPC client
3. Expose chain state controls (snapshots, time travel, mining, account and
   storage mutation, impersonation) as single RPC round trips
"""

import logging
import os
import subprocess
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from eth_utils import add_0x_prefix, encode_hex, remove_0x_prefix, to_checksum_address

from ..constants import (
    ANVIL_SEARCH_PATHS,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_START_ATTEMPTS,
    DEFAULT_STARTUP_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
    ENV_ANVIL_PATH,
    OUTPUT_TAIL_LINES,
    READY_MARKER,
    START_RETRY_BASE_DELAY,
    START_RETRY_MAX_DELAY,
)
from ..exceptions import (
    InvalidSnapshotError,
    NodeAlreadyRunningError,
    NodeNotStartedError,
    NodeStartupError,
)
from ..retry import execute_with_retry, exponential_backoff
from ..types import NodeConfig, NodeState
from .ports import allocate_port, is_port_available
from .rpc import RpcClient, to_quantity

LOG = logging.getLogger(__name__)

HexLike = Union[str, bytes, int]


@dataclass(frozen=True)
class SnapshotId:
    """Snapshot token, valid only for the node run that issued it."""

    value: str
    session: str

    def __str__(self) -> str:
        return self.value


def find_anvil(search_paths=ANVIL_SEARCH_PATHS) -> Optional[str]:
    """
    Locate a working anvil binary

    Each candidate is run with --version; the first that succeeds wins.

    Returns:
        Path or command name of the binary, None if none works
    """
    for path in search_paths:
        candidate = os.path.expanduser(path)
        try:
            subprocess.run(
                [candidate, '--version'],
                capture_output=True,
                check=True,
                text=True,
                timeout=5,
            )
            return candidate
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError):
            continue
    return None


def _to_word(value: HexLike) -> str:
    # 32-byte, 0x-prefixed storage word
    if isinstance(value, int):
        return '0x' + format(value, '064x')
    if isinstance(value, bytes):
        value = encode_hex(value)
    return '0x' + remove_0x_prefix(value).rjust(64, '0')


def _to_slot(slot: HexLike) -> str:
    if isinstance(slot, int):
        return to_quantity(slot)
    if isinstance(slot, bytes):
        return encode_hex(slot)
    return add_0x_prefix(slot)


class LocalNodeManager:
    """
    Manages one Anvil process for one test worker

    States: STOPPED -> STARTING -> READY -> STOPPING -> STOPPED, with CRASHED
    reachable from STARTING or READY and collapsing to STOPPED after cleanup.

    Usage:
        node = LocalNodeManager(NodeConfig(chain_id=1337))
        node.start()
        snapshot = node.snapshot()
        # ... run tests ...
        node.revert(snapshot)
        node.stop()
    """

    def __init__(
        self,
        config: Optional[NodeConfig] = None,
        anvil_path: Optional[str] = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        max_start_attempts: int = DEFAULT_START_ATTEMPTS,
        rpc_timeout: float = DEFAULT_RPC_TIMEOUT,
    ):
        """
        Args:
            config: Node configuration (defaults to NodeConfig())
            anvil_path: Chain binary; falls back to $ANVIL_PATH, then a search
                        of the usual Foundry install locations
            startup_timeout: Seconds to wait for the readiness line per attempt
            max_start_attempts: Attempts of the whole start sequence
            rpc_timeout: Per-request RPC timeout in seconds
        """
        self.config = config or NodeConfig()
        self.anvil_path = anvil_path or os.getenv(ENV_ANVIL_PATH)
        self.startup_timeout = startup_timeout
        self.max_start_attempts = max_start_attempts
        self.rpc_timeout = rpc_timeout

        self._process: Optional[subprocess.Popen] = None
        self._rpc: Optional[RpcClient] = None
        self._allocated_port: Optional[int] = None
        self._state = NodeState.STOPPED
        self._session: Optional[str] = None
        self._lock = threading.RLock()
        self._line_listeners: List[Callable[[str], None]] = []
        self._output_tail: Deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)

    def __enter__(self) -> 'LocalNodeManager':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # Accessors

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == NodeState.READY

    @property
    def port(self) -> int:
        """Allocated port, or -1 when not started."""
        return self._allocated_port if self._allocated_port is not None else -1

    def get_port(self) -> Optional[int]:
        return self._allocated_port

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def rpc_url(self) -> str:
        if self._allocated_port is None:
            raise NodeNotStartedError()
        return f"http://{self.config.host}:{self._allocated_port}"

    @property
    def rpc(self) -> RpcClient:
        """RPC client bound to the running node."""
        if self._rpc is None:
            raise NodeNotStartedError()
        return self._rpc

    @property
    def output_tail(self) -> List[str]:
        """Last lines the process wrote to stdout/stderr."""
        return list(self._output_tail)

    # Lifecycle

    def start(self) -> None:
        """
        Start the node and wait until it accepts RPC requests

        Raises:
            NodeAlreadyRunningError: If the node is starting or ready
            NodeStartupError: If every start attempt failed
        """
        with self._lock:
            if self._state in (NodeState.STARTING, NodeState.READY):
                raise NodeAlreadyRunningError("Node is already running")
            self._state = NodeState.STARTING

        anvil_cmd = self.anvil_path or find_anvil()
        if anvil_cmd is None:
            self._state = NodeState.STOPPED
            raise NodeStartupError(
                "Anvil not found! Please install Foundry:\n"
                "  curl -L https://foundry.paradigm.xyz | bash\n"
                "  foundryup\n"
                f"or set ${ENV_ANVIL_PATH}"
            )

        execute_with_retry(
            partial(self._start_once, anvil_cmd),
            max_attempts=self.max_start_attempts,
            delay_fn=partial(
                exponential_backoff,
                base_delay=START_RETRY_BASE_DELAY,
                max_delay=START_RETRY_MAX_DELAY,
            ),
            on_retry=self._log_start_retry,
            error_cls=NodeStartupError,
            description="Starting Anvil node",
        )
        LOG.info(f"Anvil ready at {self.rpc_url} (PID: {self.pid})")

    def stop(self) -> None:
        """Stop the node and release its port. Safe to call in any state."""
        with self._lock:
            if self._state == NodeState.STOPPED and self._process is None:
                return
            self._state = NodeState.STOPPING
        self._teardown()
        LOG.info("Anvil stopped")

    def build_anvil_args(self, port: int) -> List[str]:
        """
        Build anvil command line arguments from the config

        Args:
            port: Port the node listens on

        Returns:
            Argument list (without the binary)
        """
        config = self.config
        args = ['--port', str(port), '--host', config.host]

        if config.chain_id is not None:
            args.extend(['--chain-id', str(config.chain_id)])
        if config.block_time:
            args.extend(['--block-time', str(config.block_time)])
        if config.fork_url:
            args.extend(['--fork-url', config.fork_url])
        if config.fork_block_number is not None:
            args.extend(['--fork-block-number', str(config.fork_block_number)])
        if config.fork_retry_backoff is not None:
            args.extend(['--fork-retry-backoff', str(config.fork_retry_backoff)])
        if config.block_gas_limit is not None:
            args.extend(['--gas-limit', str(config.block_gas_limit)])
        if config.default_balance is not None:
            args.extend(['--balance', str(config.default_balance)])
        if config.total_accounts is not None:
            args.extend(['--accounts', str(config.total_accounts)])
        if config.no_mining:
            args.append('--no-mining')
        if config.hardfork:
            args.extend(['--hardfork', config.hardfork])
        if config.mnemonic:
            args.extend(['--mnemonic', config.mnemonic])

        return args

    def _start_once(self, anvil_cmd: str) -> None:
        with self._lock:
            self._state = NodeState.STARTING
            self._output_tail.clear()

        try:
            port = allocate_port(
                self.config.port,
                self.config.port_range,
                host=self.config.host,
            )
            self._allocated_port = port

            ready = threading.Event()

            def on_line(line: str) -> None:
                if READY_MARKER in line:
                    ready.set()

            self._line_listeners.append(on_line)
            try:
                self._spawn(anvil_cmd, port)
                self._wait_for_ready(ready)
            finally:
                self._line_listeners.remove(on_line)
        except Exception:
            with self._lock:
                self._state = NodeState.CRASHED
            self._teardown()
            raise

        # An exit before READY is invisible to the exit watcher, so check under
        # the lock; any later exit finds READY and takes the crash path
        with self._lock:
            returncode = self._process.poll()
            if returncode is None:
                self._rpc = RpcClient(
                    self.rpc_url,
                    timeout=self.rpc_timeout,
                    poa=bool(self.config.fork_url),
                )
                self._session = uuid.uuid4().hex
                self._state = NodeState.READY
            else:
                self._state = NodeState.CRASHED
        if returncode is not None:
            self._teardown()
            raise NodeStartupError(
                f"Anvil process exited right after becoming ready (code {returncode})\n"
                f"Output: {self._format_tail()}"
            )

    def _spawn(self, anvil_cmd: str, port: int) -> None:
        cmd = [anvil_cmd, *self.build_anvil_args(port)]
        LOG.info(f"Starting Anvil on port {port}...")
        LOG.debug(f"Command: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                bufsize=1,
            )
        except OSError as e:
            raise NodeStartupError(f"Failed to spawn {anvil_cmd}: {e}") from e

        self._process = process
        for stream, name in ((process.stdout, 'stdout'), (process.stderr, 'stderr')):
            threading.Thread(
                target=self._pump_output,
                args=(process, stream, name, port),
                name=f"anvil-{port}-{name}",
                daemon=True,
            ).start()

    def _pump_output(self, process: subprocess.Popen, stream, name: str, port: int) -> None:
        # Drain one pipe so the process never blocks on a full buffer
        for raw in iter(stream.readline, ''):
            line = raw.rstrip()
            if not line:
                continue
            self._output_tail.append(line)
            LOG.debug(f"[anvil:{port}] {name}: {line}")
            # Readers of an earlier attempt must not signal the current one
            if name == 'stdout' and process is self._process:
                for listener in list(self._line_listeners):
                    listener(line)
        stream.close()
        if name == 'stdout':
            self._on_process_exit(process, process.wait())

    def _on_process_exit(self, process: subprocess.Popen, returncode: int) -> None:
        with self._lock:
            if process is not self._process or self._state != NodeState.READY:
                return
            if returncode != 0:
                LOG.error(f"[anvil:{self._allocated_port}] process exited with code {returncode}")
            else:
                LOG.warning(f"[anvil:{self._allocated_port}] process exited unexpectedly")
            self._state = NodeState.CRASHED
        self._teardown()

    def _wait_for_ready(self, ready: threading.Event) -> None:
        process = self._process
        deadline = time.monotonic() + self.startup_timeout
        while not ready.wait(timeout=0.1):
            returncode = process.poll()
            if returncode is not None:
                # Let the readers flush what the process printed before dying
                time.sleep(0.1)
                raise NodeStartupError(
                    f"Anvil process exited unexpectedly (code {returncode})\n"
                    f"Output: {self._format_tail()}"
                )
            if time.monotonic() >= deadline:
                raise NodeStartupError(
                    f"Timeout waiting for node to start ({self.startup_timeout}s)\n"
                    f"Output: {self._format_tail()}"
                )

    def _teardown(self) -> None:
        with self._lock:
            process = self._process
            rpc = self._rpc
            self._process = None
            self._rpc = None
            self._session = None

        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=DEFAULT_STOP_TIMEOUT)
            except subprocess.TimeoutExpired:
                LOG.warning("Anvil did not exit after SIGTERM, killing it")
                process.kill()
                process.wait()
        if rpc is not None:
            rpc.close()

        with self._lock:
            self._allocated_port = None
            self._state = NodeState.STOPPED

    def _log_start_retry(self, attempt: int, error: Exception, delay: float) -> None:
        LOG.warning(
            f"Failed to start Anvil node (attempt {attempt + 1}/{self.max_start_attempts}): "
            f"{error}. Retrying in {delay:.1f}s"
        )

    def _format_tail(self) -> str:
        return '\n'.join(self._output_tail) if self._output_tail else "No output captured"

    # RPC

    def send(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send a raw JSON-RPC request to the node

        Raises:
            NodeNotStartedError: If the node is not ready
        """
        if self._state != NodeState.READY or self._rpc is None:
            raise NodeNotStartedError()
        return self._rpc.send(method, params)

    # Chain state

    def snapshot(self) -> SnapshotId:
        """Take a snapshot of the current chain state."""
        value = self.send('anvil_snapshot', [])
        return SnapshotId(value=value, session=self._session)

    def revert(self, snapshot_id: SnapshotId) -> None:
        """
        Revert the chain to a snapshot taken on this node run

        Raises:
            InvalidSnapshotError: If the snapshot came from another node or an
                                  earlier run, or the node no longer knows it
        """
        if self._state != NodeState.READY:
            raise NodeNotStartedError()
        if not isinstance(snapshot_id, SnapshotId) or snapshot_id.session != self._session:
            raise InvalidSnapshotError(
                f"Snapshot {snapshot_id} was not issued by this node run"
            )
        if not self.send('anvil_revert', [snapshot_id.value]):
            raise InvalidSnapshotError(f"Node rejected snapshot {snapshot_id}")

    def reset(self, fork_block: Optional[int] = None) -> None:
        """
        Reset the chain to its initial state or to a fork block

        Snapshots taken before the reset become invalid.
        """
        if fork_block is not None:
            forking: Dict[str, Any] = {'blockNumber': to_quantity(fork_block)}
            if self.config.fork_url:
                forking['jsonRpcUrl'] = self.config.fork_url
            self.send('anvil_reset', [{'forking': forking}])
        else:
            self.send('anvil_reset', [])
        self._session = uuid.uuid4().hex

    # Blocks

    def mine(self, blocks: int = 1) -> None:
        self.send('anvil_mine', [blocks])

    def set_automine(self, enabled: bool) -> None:
        self.send('anvil_setAutomine', [enabled])

    # Time

    def set_next_block_timestamp(self, timestamp: int) -> None:
        self.send('anvil_setNextBlockTimestamp', [timestamp])

    def increase_time(self, seconds: int) -> None:
        self.send('anvil_increaseTime', [seconds])

    def set_time(self, timestamp: int) -> None:
        self.send('anvil_setTime', [timestamp])

    # Accounts

    def get_accounts(self) -> List[str]:
        return self.send('eth_accounts', [])

    def set_balance(self, address: str, balance: int) -> None:
        """Set the balance of an address (wei)."""
        self.send('anvil_setBalance', [to_checksum_address(address), to_quantity(balance)])

    def set_nonce(self, address: str, nonce: int) -> None:
        self.send('anvil_setNonce', [to_checksum_address(address), nonce])

    def set_code(self, address: str, code: Union[str, bytes]) -> None:
        if isinstance(code, bytes):
            code = encode_hex(code)
        self.send('anvil_setCode', [to_checksum_address(address), add_0x_prefix(code)])

    def set_storage_at(self, address: str, slot: HexLike, value: HexLike) -> None:
        """
        Write one storage slot

        Args:
            address: Contract address
            slot: Storage slot (int or hex)
            value: New value, left-padded to 32 bytes
        """
        self.send('anvil_setStorageAt', [to_checksum_address(address), _to_slot(slot), _to_word(value)])

    # Fees

    def set_next_block_base_fee_per_gas(self, fee: int) -> None:
        self.send('anvil_setNextBlockBaseFeePerGas', [to_quantity(fee)])

    def set_min_gas_price(self, price: int) -> None:
        self.send('anvil_setMinGasPrice', [to_quantity(price)])

    # Chain

    def set_chain_id(self, chain_id: int) -> None:
        self.send('anvil_setChainId', [chain_id])

    # Impersonation

    def impersonate_account(self, address: str) -> None:
        self.send('anvil_impersonateAccount', [to_checksum_address(address)])

    def stop_impersonating_account(self, address: str) -> None:
        self.send('anvil_stopImpersonatingAccount', [to_checksum_address(address)])

    # Diagnostics

    def get_diagnostics(self) -> Dict[str, Any]:
        """
        Collect diagnostic information about the node

        Never raises; failures are reported in the 'errors' list.

        Returns:
            Dictionary with process, RPC and chain status
        """
        diagnostics: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S'),
            'state': self._state.value,
            'port': self._allocated_port,
            'process_alive': False,
            'process_pid': None,
            'rpc_responsive': False,
            'rpc_response_time_ms': None,
            'current_block_number': None,
            'chain_id': None,
            'port_bindable': None,
            'errors': [],
        }

        process = self._process
        if process is not None:
            diagnostics['process_pid'] = process.pid
            returncode = process.poll()
            diagnostics['process_alive'] = returncode is None
            if returncode is not None:
                diagnostics['exit_code'] = returncode
                diagnostics['errors'].append(f'Anvil process exited with code {returncode}')
        else:
            diagnostics['errors'].append('Anvil process not started')

        if self._allocated_port is not None:
            # A running node holds its port, so it must not be bindable
            diagnostics['port_bindable'] = is_port_available(self._allocated_port, self.config.host)

        rpc = self._rpc
        if rpc is not None:
            try:
                start_time = time.monotonic()
                diagnostics['current_block_number'] = rpc.block_number()
                diagnostics['rpc_response_time_ms'] = round((time.monotonic() - start_time) * 1000, 2)
                diagnostics['rpc_responsive'] = True
            except Exception as e:
                diagnostics['errors'].append(f'RPC call failed: {str(e)[:200]}')

            try:
                diagnostics['chain_id'] = rpc.chain_id()
            except Exception as e:
                diagnostics['errors'].append(f'Chain ID query failed: {str(e)[:100]}')
        else:
            diagnostics['errors'].append('RPC client not bound')

        return diagnostics

    def check_health(self) -> bool:
        """True if the process is alive and answers RPC requests."""
        diag = self.get_diagnostics()
        return diag['process_alive'] and diag['rpc_responsive']
