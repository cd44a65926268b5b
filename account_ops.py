"""
Account operations: balances, nonces, code and explorer-backed history
"""
import logging
from typing import Dict, List, Optional

import token_ops
from connection import ConnectionHandle
from errors import EthereumConnectorError, ParameterError, rpc_errors
from utils import checksum, format_units, hex_str, wei_to_ether

logger = logging.getLogger(__name__)

NONCE_BLOCK_TAGS = ('latest', 'pending')


async def get_balance(connection: ConnectionHandle, address: str) -> Dict:
    address = await connection.resolve(address)
    async with rpc_errors():
        balance = await connection.w3.eth.get_balance(address)
    return {'address': address, 'balanceWei': str(balance), 'balanceEth': wei_to_ether(balance)}


async def get_nonce(connection: ConnectionHandle, address: str, block_tag: str = 'latest') -> Dict:
    if block_tag not in NONCE_BLOCK_TAGS:
        raise ParameterError(f"Block tag must be one of {', '.join(NONCE_BLOCK_TAGS)}")
    address = await connection.resolve(address)
    async with rpc_errors():
        nonce = await connection.w3.eth.get_transaction_count(address, block_tag)
    return {'address': address, 'nonce': nonce, 'blockTag': block_tag}


async def get_code(connection: ConnectionHandle, address: str) -> Dict:
    address = await connection.resolve(address)
    async with rpc_errors():
        code = hex_str(await connection.w3.eth.get_code(address))
    return {'address': address, 'code': code, 'isContract': code not in ('0x', '')}


async def get_wallet_info(connection: ConnectionHandle) -> Dict:
    signer = connection.require_signer('read wallet info')
    async with rpc_errors():
        balance = await connection.w3.eth.get_balance(signer.address)
        nonce = await connection.w3.eth.get_transaction_count(signer.address)
        chain_id = await connection.w3.eth.chain_id
    return {
        'address': signer.address,
        'balanceWei': str(balance),
        'balanceEth': wei_to_ether(balance),
        'nonce': nonce,
        'chainId': chain_id,
        'network': connection.network.name,
    }


async def get_token_balance(connection: ConnectionHandle, token_address: str, owner_address: str) -> Dict:
    return await token_ops.get_token_balance(connection, token_address, owner_address)


async def get_multiple_token_balances(connection: ConnectionHandle, token_addresses: List[str],
                                      owner_address: str) -> List[Dict]:
    """Balances for several tokens; tokens that fail to answer are left out"""
    balances = []
    for token in token_addresses:
        try:
            balances.append(await token_ops.get_token_balance(connection, token, owner_address))
        except EthereumConnectorError as e:
            logger.debug(f"[{connection.network_id}] Skipping token {token}: {e}")
    return balances


async def get_token_allowance(connection: ConnectionHandle, token_address: str, owner_address: str,
                              spender_address: str) -> Dict:
    return await token_ops.get_token_allowance(connection, token_address, owner_address, spender_address)


# --- Explorer-backed history ---

def _format_explorer_tx(item: Dict) -> Dict:
    value = int(item.get('value') or 0)
    return {
        'hash': item.get('hash'),
        'from': checksum(item.get('from')),
        'to': checksum(item.get('to')) if item.get('to') else None,
        'value': wei_to_ether(value),
        'valueWei': str(value),
        'blockNumber': int(item.get('blockNumber') or 0),
        'timestamp': int(item.get('timeStamp') or 0),
        'gasUsed': item.get('gasUsed'),
        'isError': item.get('isError') == '1',
        'contractAddress': checksum(item.get('contractAddress')) if item.get('contractAddress') else None,
    }


def _format_explorer_transfer(item: Dict) -> Dict:
    decimals = int(item.get('tokenDecimal') or 0)
    value = int(item.get('value') or 0)
    return {
        'hash': item.get('hash'),
        'from': checksum(item.get('from')),
        'to': checksum(item.get('to')),
        'token': {
            'address': checksum(item.get('contractAddress')),
            'name': item.get('tokenName'),
            'symbol': item.get('tokenSymbol'),
            'decimals': decimals,
        },
        'value': format_units(value, decimals),
        'valueRaw': str(value),
        'blockNumber': int(item.get('blockNumber') or 0),
        'timestamp': int(item.get('timeStamp') or 0),
    }


async def get_transaction_history(connection: ConnectionHandle, address: str, page: int = 1, limit: int = 100,
                                  sort: str = 'desc') -> List[Dict]:
    address = await connection.resolve(address)
    items = await connection.explorer.get_transactions(connection.network.chain_id, address, page=page,
                                                       offset=limit, sort=sort)
    return [_format_explorer_tx(item) for item in items]


async def get_token_transfers(connection: ConnectionHandle, address: str, token_address: Optional[str] = None,
                              page: int = 1, limit: int = 100, sort: str = 'desc') -> List[Dict]:
    address = await connection.resolve(address)
    token = await connection.resolve(token_address) if token_address else None
    items = await connection.explorer.get_token_transfers(connection.network.chain_id, address,
                                                          contract_address=token, page=page, offset=limit, sort=sort)
    return [_format_explorer_transfer(item) for item in items]


async def get_internal_transactions(connection: ConnectionHandle, address: str, page: int = 1, limit: int = 100,
                                    sort: str = 'desc') -> List[Dict]:
    address = await connection.resolve(address)
    items = await connection.explorer.get_internal_transactions(connection.network.chain_id, address, page=page,
                                                                offset=limit, sort=sort)
    return [_format_explorer_tx(item) for item in items]
