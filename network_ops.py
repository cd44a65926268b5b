"""
Network operations: blocks, gas pricing, chain status, raw logs
"""
from typing import Dict, List, Optional

from web3 import Web3
from web3.exceptions import BlockNotFound

from connection import ConnectionHandle, get_fee_data as _fetch_fee_data
from errors import EthereumConnectorError, RpcError, rpc_errors
from utils import block_identifier, checksum, format_block, format_fee_data, hex_str, wei_to_gwei

SUGGESTION_PERCENTILES = [10, 50, 90]
SUGGESTION_BLOCKS = 5


async def get_block_number(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        block_number = await connection.w3.eth.block_number
        chain_id = await connection.w3.eth.chain_id
    return {'blockNumber': block_number, 'network': connection.network.name, 'chainId': chain_id}


async def get_block(connection: ConnectionHandle, block_id, include_transactions: bool = False) -> Optional[Dict]:
    async with rpc_errors():
        try:
            block = await connection.w3.eth.get_block(block_identifier(block_id),
                                                      full_transactions=include_transactions)
        except BlockNotFound:
            return None
    if not block:
        return None
    return format_block(block, include_transactions)


async def get_latest_block(connection: ConnectionHandle, include_transactions: bool = False) -> Dict:
    block = await get_block(connection, 'latest', include_transactions)
    if block is None:
        raise EthereumConnectorError("Could not fetch latest block")
    return block


async def get_gas_price(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        gas_price = await connection.w3.eth.gas_price
    return {'gasPrice': str(gas_price), 'gasPriceGwei': wei_to_gwei(gas_price)}


async def get_fee_data(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        fee_data = await _fetch_fee_data(connection.w3, connection.network)
    result = format_fee_data(fee_data)
    if fee_data.base_fee_per_gas is not None:
        result['baseFeePerGas'] = wei_to_gwei(fee_data.base_fee_per_gas)
    result['supportsEIP1559'] = fee_data.supports_eip1559
    return result


async def get_suggested_gas_prices(connection: ConnectionHandle) -> Dict:
    """slow / standard / fast tiers from the 10th, 50th and 90th percentile tips of recent blocks"""
    async with rpc_errors():
        gas_price = await connection.w3.eth.gas_price
        history = None
        if connection.network.supports_eip1559:
            history = await connection.w3.eth.fee_history(SUGGESTION_BLOCKS, 'latest', SUGGESTION_PERCENTILES)

    result = {
        'slow': None,
        'standard': None,
        'fast': None,
        'legacy': {'gasPrice': wei_to_gwei(gas_price)} if gas_price else None,
    }

    base_fees = (history or {}).get('baseFeePerGas') or []
    rewards = [r for r in (history or {}).get('reward') or [] if r]
    if not base_fees or not rewards:
        return result

    # baseFeePerGas has one extra entry: the next block's base fee
    base_fee = base_fees[-1]
    for index, tier in enumerate(('slow', 'standard', 'fast')):
        tip = sum(r[index] for r in rewards) // len(rewards)
        result[tier] = {
            'maxFeePerGas': wei_to_gwei(2 * base_fee + tip),
            'maxPriorityFeePerGas': wei_to_gwei(tip),
        }
    return result


async def get_network_info(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        chain_id = await connection.w3.eth.chain_id
        block_number = await connection.w3.eth.block_number
    info = connection.network.to_dict()
    info.update({
        'network': connection.network_id,
        'chainId': chain_id,
        'provider': connection.provider_name,
        'rpcConnected': True,
        'latestBlock': block_number,
        'walletAddress': connection.wallet_address,
        'isReadOnly': connection.is_read_only,
    })
    return info


async def get_block_transaction_count(connection: ConnectionHandle, block_id) -> Dict:
    async with rpc_errors():
        try:
            block = await connection.w3.eth.get_block(block_identifier(block_id))
        except BlockNotFound:
            block = None
    return {
        'blockIdentifier': block_id,
        'transactionCount': len(block.get('transactions') or []) if block else 0,
    }


async def get_chain_id(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        return {'chainId': await connection.w3.eth.chain_id}


async def is_syncing(connection: ConnectionHandle) -> Dict:
    async with rpc_errors():
        status = await connection.w3.eth.syncing
    if not status:
        return {'syncing': False}
    return {
        'syncing': True,
        'details': {
            'startingBlock': status.get('startingBlock'),
            'currentBlock': status.get('currentBlock'),
            'highestBlock': status.get('highestBlock'),
        },
    }


async def get_logs(connection: ConnectionHandle, address: Optional[str] = None,
                   topics: Optional[List] = None, from_block='latest', to_block='latest') -> List[Dict]:
    log_filter = {
        'fromBlock': block_identifier(from_block),
        'toBlock': block_identifier(to_block),
    }
    if address:
        log_filter['address'] = await connection.resolve(address)
    if topics:
        log_filter['topics'] = topics

    async with rpc_errors():
        logs = await connection.w3.eth.get_logs(log_filter)

    return [
        {
            'address': checksum(log.get('address')),
            'blockNumber': log.get('blockNumber'),
            'transactionHash': hex_str(log.get('transactionHash')),
            'logIndex': log.get('logIndex'),
            'topics': [hex_str(t) for t in log.get('topics', [])],
            'data': hex_str(log.get('data')),
        }
        for log in logs
    ]


async def get_uncle(connection: ConnectionHandle, block_id, index: int = 0) -> Optional[Dict]:
    block = block_identifier(block_id)
    block_param = Web3.to_hex(block) if isinstance(block, int) else block
    async with rpc_errors():
        response = await connection.w3.provider.make_request(
            'eth_getUncleByBlockNumberAndIndex', [block_param, Web3.to_hex(int(index))]
        )
    if response.get('error'):
        raise RpcError.from_response(response['error'])
    uncle = response.get('result')
    if not uncle:
        return None
    # raw JSON-RPC result: quantities are still hex
    return {
        'number': int(uncle['number'], 16) if uncle.get('number') else None,
        'hash': uncle.get('hash'),
        'parentHash': uncle.get('parentHash'),
        'miner': checksum(uncle.get('miner')),
        'timestamp': int(uncle['timestamp'], 16) if uncle.get('timestamp') else None,
        'gasLimit': str(int(uncle.get('gasLimit') or '0x0', 16)),
        'gasUsed': str(int(uncle.get('gasUsed') or '0x0', 16)),
    }
