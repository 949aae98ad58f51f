"""
Shared constants for onchaintestkit

Well-known chain addresses, default dev keys, and the default timeouts and
budgets used by the node manager and the deployment engine.
"""

# Deterministic deployment proxy (https://github.com/Arachnid/deterministic-deployment-proxy)
# Same address on every chain; deployed by a pre-signed legacy transaction
PROXY_ADDRESS = '0x4e59b44847b379578588920cA78FbF26c0B4956C'
PROXY_DEPLOYMENT_TX = (
    '0xf8a58085174876e800830186a08080b853604580600e600039806000f350fe7fffffff'
    'ffffffffffffffffffffffffffffffffffffffffffffffffffffffffe036016000816020'
    '82378035828234f58015156039578182fd5b8082525050506014600cf31ba02222222222'
    '222222222222222222222222222222222222222222222222222222a02222222222222222'
    '222222222222222222222222222222222222222222222222'
)

# Anvil account 0 for the default mnemonic
# "test test test test test test test test test test test junk"
DEFAULT_DEV_PRIVATE_KEY = '0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80'
DEFAULT_DEV_ADDRESS = '0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266'

# Base Sepolia
DEFAULT_CHAIN_ID = 84532

# Port allocation. The range stays below the Linux ephemeral range (32768+)
# and is wide enough that independent workers rarely pick the same port.
DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT_RANGE = (10000, 30000)
MAX_PORT_PROBES = 20

# Node startup
READY_MARKER = 'Listening on'
DEFAULT_STARTUP_TIMEOUT = 30.0
DEFAULT_START_ATTEMPTS = 5
DEFAULT_STOP_TIMEOUT = 5.0
START_RETRY_BASE_DELAY = 1.0
START_RETRY_MAX_DELAY = 5.0
OUTPUT_TAIL_LINES = 30

ANVIL_SEARCH_PATHS = (
    '~/.foundry/bin/anvil',
    '/usr/local/bin/anvil',
    'anvil',
)

# RPC
DEFAULT_RPC_TIMEOUT = 60
DEFAULT_RECEIPT_TIMEOUT = 30

# Environment variables
ENV_ANVIL_PATH = 'ANVIL_PATH'
ENV_PROJECT_ROOT = 'E2E_CONTRACT_PROJECT_ROOT'
ENV_FORK_URL = 'E2E_TEST_FORK_URL'
ENV_FORK_BLOCK_NUMBER = 'E2E_TEST_FORK_BLOCK_NUMBER'
ENV_SEED_PHRASE = 'E2E_TEST_SEED_PHRASE'
ENV_CHAIN_ID = 'E2E_TEST_CHAIN_ID'
