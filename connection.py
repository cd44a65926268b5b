"""
Connection resolution: endpoint URLs, signer, address normalization and the
per-invocation ConnectionHandle every operation works against
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union
from urllib.parse import urlparse

from ens.exceptions import InvalidName
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import ValidationError
from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware

import config
from errors import (
    ConfigurationError,
    EthereumConnectorError,
    InvalidAddressError,
    InvalidSecretError,
    MissingApiKeyError,
    MissingSecretError,
    NoPublicEndpointError,
    ReadOnlyConnectionError,
    UnresolvableNameError,
    UnsupportedProviderError,
    rpc_errors,
)
from explorer_client_async import ExplorerClientAsync
from networks import CUSTOM_NETWORK, NETWORKS, NetworkDescriptor, get_network
from utils import gwei_to_wei, hex_str, is_valid_private_key

logger = logging.getLogger(__name__)

WALLET_NONE = 'none'
WALLET_PRIVATE_KEY = 'privateKey'
WALLET_MNEMONIC = 'mnemonic'

PROVIDER_PUBLIC = 'public'
PROVIDER_CUSTOM = 'custom'

DEFAULT_PRIORITY_FEE = 10 ** 9  # 1 gwei


@dataclass
class EthereumCredentials:
    network: str = 'mainnet'
    rpc_provider: str = PROVIDER_PUBLIC
    api_key: Optional[str] = None
    custom_rpc_url: Optional[str] = None
    custom_ws_url: Optional[str] = None
    custom_chain_id: Optional[int] = None
    wallet_type: str = WALLET_NONE
    private_key: Optional[str] = None
    mnemonic: Optional[str] = None
    derivation_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'EthereumCredentials':
        """Build from the host's credential object (camelCase keys)"""
        chain_id = data.get('customChainId')
        return cls(
            network=data.get('network') or 'mainnet',
            rpc_provider=data.get('rpcProvider') or PROVIDER_PUBLIC,
            api_key=data.get('apiKey') or None,
            custom_rpc_url=data.get('customRpcUrl') or None,
            custom_ws_url=data.get('customWsUrl') or None,
            custom_chain_id=int(chain_id) if chain_id not in (None, '') else None,
            wallet_type=data.get('walletType') or WALLET_NONE,
            private_key=data.get('privateKey') or None,
            mnemonic=data.get('mnemonic') or None,
            derivation_path=data.get('derivationPath') or None,
        )

    def __repr__(self):
        # secrets stay out of reprs and tracebacks
        return (f"EthereumCredentials(network={self.network!r}, rpc_provider={self.rpc_provider!r}, "
                f"wallet_type={self.wallet_type!r})")


@dataclass
class GasOptions:
    """Optional transaction overrides; fee fields are held in wei"""
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None
    nonce: Optional[int] = None

    @classmethod
    def from_options(cls, options: Optional[Dict]) -> 'GasOptions':
        """Parse the "additional options" bag; fee values arrive in gwei"""
        options = options or {}
        gas_options = cls()

        gas_limit = options.get('gasLimit')
        if gas_limit not in (None, '') and int(gas_limit) > 0:
            gas_options.gas_limit = int(gas_limit)
        if options.get('maxFeePerGas'):
            gas_options.max_fee_per_gas = gwei_to_wei(options['maxFeePerGas'])
        if options.get('maxPriorityFeePerGas'):
            gas_options.max_priority_fee_per_gas = gwei_to_wei(options['maxPriorityFeePerGas'])
        if options.get('gasPrice'):
            gas_options.gas_price = gwei_to_wei(options['gasPrice'])
        nonce = options.get('nonce')
        if nonce not in (None, '') and int(nonce) >= 0:
            gas_options.nonce = int(nonce)

        return gas_options


@dataclass(frozen=True)
class FeeData:
    gas_price: Optional[int]
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    base_fee_per_gas: Optional[int] = None

    @property
    def supports_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None


async def get_fee_data(w3, network: NetworkDescriptor) -> FeeData:
    """Current gas price plus EIP-1559 fees (2 * next base fee + median tip) where supported"""
    gas_price = await w3.eth.gas_price
    if not network.supports_eip1559:
        return FeeData(gas_price=gas_price)

    history = await w3.eth.fee_history(1, 'latest', [50])
    base_fees = history.get('baseFeePerGas') or []
    if not base_fees:
        return FeeData(gas_price=gas_price)

    base_fee = base_fees[-1]
    rewards = history.get('reward') or []
    priority = rewards[-1][0] if rewards and rewards[-1] else DEFAULT_PRIORITY_FEE
    return FeeData(
        gas_price=gas_price,
        max_fee_per_gas=2 * base_fee + priority,
        max_priority_fee_per_gas=priority,
        base_fee_per_gas=base_fee,
    )


# --- Endpoint resolution ---

def _is_custom(credentials: EthereumCredentials) -> bool:
    return credentials.rpc_provider == PROVIDER_CUSTOM or credentials.network == CUSTOM_NETWORK


def resolve_rpc_url(credentials: EthereumCredentials) -> str:
    provider = credentials.rpc_provider
    network_id = credentials.network

    if _is_custom(credentials):
        if not credentials.custom_rpc_url:
            raise ConfigurationError("Custom RPC URL is required for custom provider/network")
        return credentials.custom_rpc_url

    network = get_network(network_id)

    if provider == PROVIDER_PUBLIC:
        public_host = network.rpc_urls.get(PROVIDER_PUBLIC)
        if not public_host:
            raise NoPublicEndpointError(network_id)
        return f"https://{public_host}"

    # QuickNode endpoints are tenant specific
    if provider == 'quicknode' and credentials.custom_rpc_url:
        return credentials.custom_rpc_url

    if not credentials.api_key and provider != 'ankr':
        raise MissingApiKeyError(provider)

    template = network.rpc_urls.get(provider)
    if not template:
        raise UnsupportedProviderError(provider, network_id)

    if not credentials.api_key:
        return f"https://{template}"
    return f"https://{template}/{credentials.api_key}"


def resolve_ws_url(credentials: EthereumCredentials) -> Optional[str]:
    """WebSocket endpoint, or None when only polling is possible"""
    if credentials.custom_ws_url:
        return credentials.custom_ws_url
    if _is_custom(credentials):
        return None

    network = NETWORKS.get(credentials.network)
    if network is None:
        return None
    template = network.ws_urls.get(credentials.rpc_provider)
    if not template or credentials.rpc_provider not in ('alchemy', 'infura') or not credentials.api_key:
        return None
    return f"wss://{template}/{credentials.api_key}"


def endpoint_host(url: Optional[str]) -> str:
    """Host part of an endpoint, safe to log (drops key-bearing paths and userinfo)"""
    if not url:
        return ''
    return urlparse(url).hostname or ''


# --- Signer ---

class Signer:
    """A local account bound to an endpoint; signs and broadcasts transactions"""

    def __init__(self, account: LocalAccount, w3, network: NetworkDescriptor):
        self._account = account
        self.w3 = w3
        self.network = network

    @property
    def address(self) -> str:
        return self._account.address

    def __repr__(self):
        return f"Signer(address={self.address})"

    async def _apply_fees(self, tx: Dict, gas_options: GasOptions):
        if gas_options.gas_price is not None:
            tx['gasPrice'] = gas_options.gas_price
            return

        max_fee = gas_options.max_fee_per_gas
        priority = gas_options.max_priority_fee_per_gas
        if max_fee is None or priority is None:
            fee_data = await get_fee_data(self.w3, self.network)
            if not fee_data.supports_eip1559 and max_fee is None and priority is None:
                tx['gasPrice'] = fee_data.gas_price
                return
            if priority is None:
                priority = fee_data.max_priority_fee_per_gas or DEFAULT_PRIORITY_FEE
            if max_fee is None:
                base_fee = fee_data.base_fee_per_gas or 0
                max_fee = 2 * base_fee + priority

        tx['maxFeePerGas'] = max_fee
        tx['maxPriorityFeePerGas'] = min(priority, max_fee)

    async def _prefill(self, tx: Dict, gas_options: GasOptions) -> Dict:
        """Sender, chain id, nonce, fees and an explicit gas limit"""
        tx = {k: v for k, v in tx.items() if v is not None}
        tx['from'] = self.address
        tx.setdefault('value', 0)
        tx['chainId'] = await self.w3.eth.chain_id

        if gas_options.nonce is not None:
            tx['nonce'] = gas_options.nonce
        else:
            tx['nonce'] = await self.w3.eth.get_transaction_count(self.address, 'pending')

        if gas_options.gas_limit:
            tx['gas'] = gas_options.gas_limit

        await self._apply_fees(tx, gas_options)
        return tx

    async def build_transaction(self, tx: Dict, gas_options: Optional[GasOptions] = None) -> Dict:
        """Fill sender, chain id, nonce, gas and fees"""
        tx = await self._prefill(tx, gas_options or GasOptions())
        tx.setdefault('data', '0x')
        if 'gas' not in tx:
            estimate_request = {k: tx[k] for k in ('from', 'to', 'value', 'data') if k in tx}
            tx['gas'] = await self.w3.eth.estimate_gas(estimate_request)
        return tx

    async def _sign_and_send(self, tx: Dict) -> Dict:
        unsigned = {k: v for k, v in tx.items() if k != 'from'}
        signed = self._account.sign_transaction(unsigned)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx['hash'] = hex_str(tx_hash)
        logger.info(f"[{self.network.id}] Sent transaction {tx['hash']} from {self.address} (nonce {tx['nonce']})")
        return tx

    async def send_transaction(self, tx: Dict, gas_options: Optional[GasOptions] = None) -> Dict:
        """Sign locally and broadcast; returns the sent transaction with its hash"""
        return await self._sign_and_send(await self.build_transaction(tx, gas_options))

    async def send_contract_transaction(self, fn, value: int = 0, gas_options: Optional[GasOptions] = None) -> Dict:
        """
        Sign and broadcast a bound contract function or constructor. web3 encodes
        the call data and estimates gas when no limit is given.
        """
        tx = await self._prefill({'value': value}, gas_options or GasOptions())
        tx = await fn.build_transaction(tx)
        return await self._sign_and_send(dict(tx))


def _load_account(credentials: EthereumCredentials) -> Optional[LocalAccount]:
    wallet_type = credentials.wallet_type

    if wallet_type == WALLET_NONE:
        return None

    if wallet_type == WALLET_PRIVATE_KEY:
        key = (credentials.private_key or '').strip()
        if not key:
            raise MissingSecretError("Private key is required")
        if not key.startswith('0x'):
            key = '0x' + key
        if not is_valid_private_key(key):
            raise InvalidSecretError("Private key must be a 32-byte hex value")
        try:
            return Account.from_key(key)
        except (ValueError, TypeError):
            raise InvalidSecretError("Private key is not a valid secp256k1 key") from None

    if wallet_type == WALLET_MNEMONIC:
        phrase = (credentials.mnemonic or '').strip()
        if not phrase:
            raise MissingSecretError("Mnemonic phrase is required")
        path = credentials.derivation_path or config.DEFAULT_DERIVATION_PATH
        Account.enable_unaudited_hdwallet_features()
        try:
            return Account.from_mnemonic(phrase, account_path=path)
        except (ValueError, TypeError, ValidationError):
            raise InvalidSecretError(
                f"Could not derive an account from the mnemonic with path {path}"
            ) from None

    raise ConfigurationError(f"Unknown wallet type: {wallet_type}")


def resolve_signer(credentials: EthereumCredentials, w3, network: NetworkDescriptor) -> Optional[Signer]:
    account = _load_account(credentials)
    if account is None:
        return None
    return Signer(account, w3, network)


# --- Address resolution ---

async def resolve_address(value: str, w3) -> str:
    """Checksummed address for a hex address or an ENS name"""
    if not isinstance(value, str):
        raise InvalidAddressError(str(value))
    value = value.strip()

    if Web3.is_address(value):
        return Web3.to_checksum_address(value)

    if '.' in value:
        try:
            async with rpc_errors():
                resolved = await w3.ens.address(value)
        except InvalidName:
            raise UnresolvableNameError(value) from None
        if not resolved:
            raise UnresolvableNameError(value)
        return Web3.to_checksum_address(resolved)

    raise InvalidAddressError(value)


# --- Connection handle ---

@dataclass(frozen=True)
class ConnectionHandle:
    w3: AsyncWeb3
    network: NetworkDescriptor
    network_id: str
    provider_name: str
    ws_url: Optional[str] = None
    signer: Optional[Signer] = None
    # shared by every item of an invocation, ABI cache included
    explorer: ExplorerClientAsync = field(default_factory=ExplorerClientAsync)

    @property
    def is_read_only(self) -> bool:
        return self.signer is None

    @property
    def wallet_address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    def require_signer(self, action: str) -> Signer:
        if self.signer is None:
            raise ReadOnlyConnectionError(action)
        return self.signer

    async def resolve(self, value: str) -> str:
        return await resolve_address(value, self.w3)


def create_connection(credentials: Union[EthereumCredentials, Dict]) -> ConnectionHandle:
    if not isinstance(credentials, EthereumCredentials):
        credentials = EthereumCredentials.from_dict(credentials)

    rpc_url = resolve_rpc_url(credentials)
    ws_url = resolve_ws_url(credentials)
    network = get_network(credentials.network, credentials.custom_chain_id)

    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={'timeout': config.HTTP_TIMEOUT}))

    # Inject POA middleware for networks that use Proof of Authority
    if network.is_poa:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        logger.debug(f"[{network.id}] Injected POA middleware")

    signer = resolve_signer(credentials, w3, network)

    logger.info(
        f"[{network.id}] Connection via {credentials.rpc_provider} ({endpoint_host(rpc_url)}), "
        f"{'read-only' if signer is None else 'wallet ' + signer.address}"
    )
    return ConnectionHandle(
        w3=w3,
        network=network,
        network_id=credentials.network,
        provider_name=credentials.rpc_provider,
        ws_url=ws_url,
        signer=signer,
    )


async def close_connection(handle: ConnectionHandle):
    """Release the provider's pooled HTTP sessions"""
    try:
        await handle.w3.provider.disconnect()
    except Exception as e:
        logger.warning(f"[{handle.network_id}] Error while closing connection: {e}")


async def test_connection(handle: ConnectionHandle) -> Dict:
    try:
        async with rpc_errors():
            block_number = await handle.w3.eth.block_number
            chain_id = await handle.w3.eth.chain_id
    except EthereumConnectorError as e:
        logger.warning(f"[{handle.network_id}] Connection test failed: {e}")
        return {'success': False, 'error': str(e)}

    result = {'success': True, 'blockNumber': block_number, 'chainId': chain_id}
    if handle.signer is not None:
        result['walletAddress'] = handle.signer.address
    logger.info(f"[{handle.network_id}] Connection test passed at block {block_number}")
    return result
