"""
Configuration file for the Ethereum workflow connector
"""
import os

# Logging Configuration
LOG_FILE = os.getenv('ETH_CONNECTOR_LOG_FILE', 'ethereum_connector.log')
LOG_LEVEL = os.getenv('ETH_CONNECTOR_LOG_LEVEL', 'INFO')

# Trigger cursor persistence (used by the CLI watcher)
DB_PATH = os.getenv('ETH_CONNECTOR_DB_PATH', 'ethereum_connector.db')

# Polling Configuration
POLL_INTERVAL = int(os.getenv('ETH_CONNECTOR_POLL_INTERVAL', '12'))  # seconds between polls
DEFAULT_BATCH_SIZE = 100  # maximum number of blocks processed per poll

# Wallet Configuration
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"

# Transaction Configuration
DEFAULT_CONFIRMATION_TIMEOUT_MS = 120000
DEFAULT_GAS_PRICE_MULTIPLIER = 1.1
CONFIRMATION_POLL_INTERVAL = 2  # seconds between head checks while waiting

# Block explorer API (Etherscan v2 multichain endpoint)
EXPLORER_API_URL = os.getenv('ETHERSCAN_API_URL', 'https://api.etherscan.io/v2/api')
EXPLORER_API_KEY = os.getenv('ETHERSCAN_API_KEY', '')

# Load explorer API key from file if not in environment
if not EXPLORER_API_KEY:
    try:
        with open(os.getenv('ETHERSCAN_API_KEY_FILE', 'Etherscan-API-Key'), 'r') as f:
            EXPLORER_API_KEY = f.read().strip()
    except FileNotFoundError:
        pass

# HTTP Configuration (explorer and NFT metadata requests)
HTTP_TIMEOUT = 10  # seconds
EXPLORER_MIN_REQUEST_INTERVAL = 0.2  # 5 requests per second (free tier)

# Decentralized storage gateways for NFT metadata
IPFS_GATEWAY = os.getenv('ETH_CONNECTOR_IPFS_GATEWAY', 'https://ipfs.io/ipfs/')
ARWEAVE_GATEWAY = os.getenv('ETH_CONNECTOR_ARWEAVE_GATEWAY', 'https://arweave.net/')

# ENS text records fetched by the "get record" operation
DEFAULT_ENS_TEXT_KEYS = ['email', 'url', 'description', 'com.twitter', 'com.github']
