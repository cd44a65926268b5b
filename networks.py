"""
Static registry of supported EVM networks
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from errors import UnknownNetworkError

CUSTOM_NETWORK = 'custom'

# Networks that use Proof of Authority (POA) consensus
POA_NETWORKS = ['polygon', 'polygon-amoy', 'bsc', 'bsc-testnet', 'avalanche', 'avalanche-fuji']


@dataclass(frozen=True)
class NetworkDescriptor:
    id: str
    name: str
    chain_id: int
    symbol: str
    explorer: str
    is_testnet: bool
    supports_eip1559: bool
    rpc_urls: Dict[str, str] = field(default_factory=dict)
    ws_urls: Dict[str, str] = field(default_factory=dict)

    @property
    def is_poa(self) -> bool:
        return self.id in POA_NETWORKS

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'chainId': self.chain_id,
            'symbol': self.symbol,
            'explorer': self.explorer,
            'isTestnet': self.is_testnet,
            'supportsEIP1559': self.supports_eip1559,
        }


def _network(id, name, chain_id, symbol, explorer, is_testnet, supports_eip1559, rpc_urls, ws_urls=None):
    return NetworkDescriptor(
        id=id,
        name=name,
        chain_id=chain_id,
        symbol=symbol,
        explorer=explorer,
        is_testnet=is_testnet,
        supports_eip1559=supports_eip1559,
        rpc_urls=rpc_urls,
        ws_urls=ws_urls or {},
    )


NETWORKS: Dict[str, NetworkDescriptor] = {n.id: n for n in [
    _network('mainnet', 'Ethereum Mainnet', 1, 'ETH', 'https://etherscan.io', False, True, {
        'alchemy': 'eth-mainnet.g.alchemy.com/v2',
        'infura': 'mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/eth',
        'public': 'eth.llamarpc.com',
    }, {
        'alchemy': 'eth-mainnet.g.alchemy.com/v2',
        'infura': 'mainnet.infura.io/ws/v3',
    }),
    _network('sepolia', 'Sepolia Testnet', 11155111, 'ETH', 'https://sepolia.etherscan.io', True, True, {
        'alchemy': 'eth-sepolia.g.alchemy.com/v2',
        'infura': 'sepolia.infura.io/v3',
        'ankr': 'rpc.ankr.com/eth_sepolia',
        'public': 'rpc.sepolia.org',
    }, {
        'alchemy': 'eth-sepolia.g.alchemy.com/v2',
        'infura': 'sepolia.infura.io/ws/v3',
    }),
    _network('goerli', 'Goerli Testnet (Deprecated)', 5, 'ETH', 'https://goerli.etherscan.io', True, True, {
        'alchemy': 'eth-goerli.g.alchemy.com/v2',
        'infura': 'goerli.infura.io/v3',
        'ankr': 'rpc.ankr.com/eth_goerli',
        'public': 'rpc.goerli.mudit.blog',
    }),
    _network('holesky', 'Holesky Testnet', 17000, 'ETH', 'https://holesky.etherscan.io', True, True, {
        'alchemy': 'eth-holesky.g.alchemy.com/v2',
        'infura': 'holesky.infura.io/v3',
        'ankr': 'rpc.ankr.com/eth_holesky',
        'public': 'ethereum-holesky.publicnode.com',
    }),
    _network('polygon', 'Polygon Mainnet', 137, 'MATIC', 'https://polygonscan.com', False, True, {
        'alchemy': 'polygon-mainnet.g.alchemy.com/v2',
        'infura': 'polygon-mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/polygon',
        'public': 'polygon-rpc.com',
    }),
    _network('polygon-amoy', 'Polygon Amoy Testnet', 80002, 'MATIC', 'https://amoy.polygonscan.com', True, True, {
        'alchemy': 'polygon-amoy.g.alchemy.com/v2',
        'infura': 'polygon-amoy.infura.io/v3',
        'ankr': 'rpc.ankr.com/polygon_amoy',
        'public': 'rpc-amoy.polygon.technology',
    }),
    _network('arbitrum', 'Arbitrum One', 42161, 'ETH', 'https://arbiscan.io', False, True, {
        'alchemy': 'arb-mainnet.g.alchemy.com/v2',
        'infura': 'arbitrum-mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/arbitrum',
        'public': 'arb1.arbitrum.io/rpc',
    }),
    _network('arbitrum-sepolia', 'Arbitrum Sepolia', 421614, 'ETH', 'https://sepolia.arbiscan.io', True, True, {
        'alchemy': 'arb-sepolia.g.alchemy.com/v2',
        'infura': 'arbitrum-sepolia.infura.io/v3',
        'ankr': 'rpc.ankr.com/arbitrum_sepolia',
        'public': 'sepolia-rollup.arbitrum.io/rpc',
    }),
    _network('optimism', 'Optimism', 10, 'ETH', 'https://optimistic.etherscan.io', False, True, {
        'alchemy': 'opt-mainnet.g.alchemy.com/v2',
        'infura': 'optimism-mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/optimism',
        'public': 'mainnet.optimism.io',
    }),
    _network('optimism-sepolia', 'Optimism Sepolia', 11155420, 'ETH', 'https://sepolia-optimism.etherscan.io', True, True, {
        'alchemy': 'opt-sepolia.g.alchemy.com/v2',
        'infura': 'optimism-sepolia.infura.io/v3',
        'ankr': 'rpc.ankr.com/optimism_sepolia',
        'public': 'sepolia.optimism.io',
    }),
    _network('base', 'Base', 8453, 'ETH', 'https://basescan.org', False, True, {
        'alchemy': 'base-mainnet.g.alchemy.com/v2',
        'infura': 'base-mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/base',
        'public': 'mainnet.base.org',
    }),
    _network('base-sepolia', 'Base Sepolia', 84532, 'ETH', 'https://sepolia.basescan.org', True, True, {
        'alchemy': 'base-sepolia.g.alchemy.com/v2',
        'infura': 'base-sepolia.infura.io/v3',
        'ankr': 'rpc.ankr.com/base_sepolia',
        'public': 'sepolia.base.org',
    }),
    _network('avalanche', 'Avalanche C-Chain', 43114, 'AVAX', 'https://snowtrace.io', False, True, {
        'infura': 'avalanche-mainnet.infura.io/v3',
        'ankr': 'rpc.ankr.com/avalanche',
        'public': 'api.avax.network/ext/bc/C/rpc',
    }),
    _network('avalanche-fuji', 'Avalanche Fuji', 43113, 'AVAX', 'https://testnet.snowtrace.io', True, True, {
        'infura': 'avalanche-fuji.infura.io/v3',
        'ankr': 'rpc.ankr.com/avalanche_fuji',
        'public': 'api.avax-test.network/ext/bc/C/rpc',
    }),
    _network('bsc', 'BNB Smart Chain', 56, 'BNB', 'https://bscscan.com', False, False, {
        'ankr': 'rpc.ankr.com/bsc',
        'public': 'bsc-dataseed.binance.org',
    }),
    _network('bsc-testnet', 'BNB Smart Chain Testnet', 97, 'tBNB', 'https://testnet.bscscan.com', True, False, {
        'ankr': 'rpc.ankr.com/bsc_testnet_chapel',
        'public': 'data-seed-prebsc-1-s1.binance.org:8545',
    }),
]}


def custom_network(chain_id: Optional[int] = None) -> NetworkDescriptor:
    """Descriptor for a user-supplied endpoint; templates are always empty"""
    return _network(CUSTOM_NETWORK, 'Custom Network', chain_id or 1, 'ETH', '', False, True, {})


def get_network(network_id: str, custom_chain_id: Optional[int] = None) -> NetworkDescriptor:
    if network_id == CUSTOM_NETWORK:
        return custom_network(custom_chain_id)
    try:
        return NETWORKS[network_id]
    except KeyError:
        raise UnknownNetworkError(network_id) from None
