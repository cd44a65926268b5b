"""
Smart contract operations: read/write state, deploy, query events, ABI encode/decode
"""
import logging
from typing import Dict, List, Optional

from eth_utils import abi_to_signature, filter_abi_by_type, get_abi_output_types, is_hex
from hexbytes import HexBytes

import abi_codec
import config
from connection import ConnectionHandle, GasOptions
from errors import ParameterError, abi_errors, rpc_errors
from utils import (
    block_identifier,
    ether_to_wei,
    explorer_address_url,
    explorer_tx_url,
    format_event,
    to_json_safe,
)

logger = logging.getLogger(__name__)


# --- Shared call helpers (used by the token and NFT operations too) ---

async def call_function(fn):
    """eth_call a bound contract function and return its decoded result"""
    with abi_errors():
        async with rpc_errors():
            return await fn.call()


async def send_function(connection: ConnectionHandle, fn, value: int = 0, gas_options: Optional[GasOptions] = None,
                        action: str = 'write to contracts') -> Dict:
    """Sign a bound contract function with the connection's wallet and broadcast it"""
    signer = connection.require_signer(action)
    with abi_errors():
        async with rpc_errors():
            return await signer.send_contract_transaction(fn, value, gas_options)


def _tx_summary(connection: ConnectionHandle, tx: Dict, **extra) -> Dict:
    result = {'hash': tx['hash'], 'from': tx['from']}
    result.update(extra)
    url = explorer_tx_url(connection.network, tx['hash'])
    if url:
        result['explorerUrl'] = url
    return result


def _require_hex(data):
    if not isinstance(data, str) or not is_hex(data):
        raise ParameterError("Encoded data must be a hex string")


# --- Operations ---

async def read_contract(connection: ConnectionHandle, contract_address: str, abi, function_name: str,
                        args: Optional[list] = None):
    address = await connection.resolve(contract_address)
    with abi_errors():
        contract = abi_codec.contract_for(connection.w3, abi, address)
        fn = abi_codec.bind_function(contract, function_name, args)
    return to_json_safe(await call_function(fn))


async def write_contract(connection: ConnectionHandle, contract_address: str, abi, function_name: str,
                         args: Optional[list] = None, value: Optional[str] = None,
                         gas_options: Optional[GasOptions] = None) -> Dict:
    connection.require_signer('write to contracts')
    address = await connection.resolve(contract_address)
    with abi_errors():
        contract = abi_codec.contract_for(connection.w3, abi, address)
        fn = abi_codec.bind_function(contract, function_name, args)
    tx = await send_function(connection, fn, value=ether_to_wei(value) if value else 0, gas_options=gas_options)
    return _tx_summary(connection, tx, to=address)


async def deploy_contract(connection: ConnectionHandle, abi, bytecode: str, constructor_args: Optional[list] = None,
                          gas_options: Optional[GasOptions] = None, value: Optional[str] = None) -> Dict:
    """Send the creation transaction and wait for it to be mined"""
    connection.require_signer('deploy contracts')
    bytecode = (bytecode or '').strip()
    if not bytecode:
        raise ParameterError("Contract bytecode is required")
    if not is_hex(bytecode):
        raise ParameterError("Contract bytecode is not valid hex")
    constructor_args = constructor_args or []

    with abi_errors():
        factory = abi_codec.contract_for(connection.w3, abi, bytecode=bytecode)
    constructors = filter_abi_by_type('constructor', factory.abi)
    inputs = constructors[0].get('inputs', []) if constructors else []
    if constructor_args and not inputs:
        raise ParameterError("Contract constructor takes no arguments")

    with abi_errors():
        constructor = factory.constructor(*abi_codec.coerce_args(inputs, constructor_args))
    tx = await send_function(connection, constructor, value=ether_to_wei(value) if value else 0,
                             gas_options=gas_options, action='deploy contracts')

    async with rpc_errors():
        receipt = await connection.w3.eth.wait_for_transaction_receipt(
            tx['hash'],
            timeout=config.DEFAULT_CONFIRMATION_TIMEOUT_MS / 1000,
            poll_latency=config.CONFIRMATION_POLL_INTERVAL,
        )

    contract_address = receipt.get('contractAddress')
    logger.info(f"[{connection.network_id}] Deployed contract at {contract_address} in {tx['hash']}")
    result = {
        'hash': tx['hash'],
        'contractAddress': contract_address,
        'from': tx['from'],
        'status': receipt.get('status'),
        'blockNumber': receipt.get('blockNumber'),
    }
    url = explorer_address_url(connection.network, contract_address)
    if url:
        result['explorerUrl'] = url
    return result


async def get_contract_events(connection: ConnectionHandle, contract_address: str, abi, event_name: str,
                              from_block='earliest', to_block='latest', filters: Optional[list] = None) -> List[Dict]:
    """Past logs for one event; logs that fail to decode keep their raw topics and data"""
    address = await connection.resolve(contract_address)
    with abi_errors():
        event = abi_codec.find_event(abi_codec.contract_for(connection.w3, abi, address), event_name)
        topics = abi_codec.event_topics(event, filters)

    async with rpc_errors():
        logs = await connection.w3.eth.get_logs({
            'address': address,
            'topics': topics,
            'fromBlock': block_identifier(from_block, 'earliest'),
            'toBlock': block_identifier(to_block, 'latest'),
        })

    events = []
    for log in logs:
        try:
            args = abi_codec.decode_log(event, log)
        except abi_codec.LOG_DECODE_ERRORS as e:
            logger.debug(f"[{connection.network_id}] Could not decode {event_name} log: {e}")
            args = None
        events.append(format_event(log, event.abi['name'], args))
    return events


def encode_function_data(connection: ConnectionHandle, abi, function_name: str, args: Optional[list] = None) -> str:
    with abi_errors():
        contract = abi_codec.contract_for(connection.w3, abi)
        fn = abi_codec.bind_function(contract, function_name, args)
        return contract.encode_abi(abi_to_signature(fn.abi), args=fn.args)


def decode_function_data(connection: ConnectionHandle, abi, data: str) -> Dict:
    _require_hex(data)
    with abi_errors():
        contract = abi_codec.contract_for(connection.w3, abi)
        fn, args = contract.decode_function_input(data)
    return {'name': fn.abi['name'], 'signature': abi_to_signature(fn.abi), 'args': to_json_safe(args)}


def decode_function_result(connection: ConnectionHandle, abi, function_name: str, data: str):
    """Single-output functions yield the bare value, others a list in output order"""
    _require_hex(data)
    fn_abi = abi_codec.find_function_abi(abi_codec.parse_abi(abi), function_name)
    outputs = fn_abi.get('outputs', [])
    if not outputs:
        return None
    with abi_errors():
        values = connection.w3.codec.decode(get_abi_output_types(fn_abi), HexBytes(data))
    normalized = [abi_codec.normalize_value(p, v) for p, v in zip(outputs, values)]
    return to_json_safe(normalized[0] if len(normalized) == 1 else normalized)


def encode_event_topics(connection: ConnectionHandle, abi, event_name: str,
                        args: Optional[list] = None) -> List[Optional[str]]:
    with abi_errors():
        event = abi_codec.find_event(abi_codec.contract_for(connection.w3, abi), event_name)
        return abi_codec.event_topics(event, args)


def decode_event_log(connection: ConnectionHandle, abi, data: str, topics: List[str]) -> Dict:
    """Decode a log against the first event whose topic0 and layout both fit"""
    if not topics:
        raise ParameterError("Log has no topics")
    for topic in topics:
        _require_hex(topic)
    with abi_errors():
        candidates = abi_codec.find_events_by_topic(connection.w3, abi, topics[0])

    log = {'topics': [HexBytes(t) for t in topics], 'data': data or '0x'}
    for event in candidates:
        try:
            args = abi_codec.decode_log(event, log)
        except abi_codec.LOG_DECODE_ERRORS as e:
            # same topic0 with a different indexed layout (ERC-20 vs ERC-721 Transfer)
            logger.debug(f"[{connection.network_id}] Log does not fit {event.abi['name']}: {e}")
            continue
        return {'name': event.abi['name'], 'signature': abi_to_signature(event.abi), 'args': to_json_safe(args)}
    raise ParameterError("Could not decode event log: no matching event in ABI")


async def estimate_contract_gas(connection: ConnectionHandle, contract_address: str, abi, function_name: str,
                                args: Optional[list] = None, value: Optional[str] = None) -> Dict:
    address = await connection.resolve(contract_address)
    request = {}
    if value:
        request['value'] = ether_to_wei(value)
    if connection.wallet_address:
        request['from'] = connection.wallet_address

    with abi_errors():
        fn = abi_codec.bind_function(abi_codec.contract_for(connection.w3, abi, address), function_name, args)
        async with rpc_errors():
            gas_limit = await fn.estimate_gas(request)

    return {'gasLimit': str(gas_limit), 'functionName': function_name}


async def get_contract_abi(connection: ConnectionHandle, contract_address: str) -> Dict:
    """Verified ABI from the block explorer"""
    address = await connection.resolve(contract_address)
    abi = await connection.explorer.get_contract_abi(connection.network.chain_id, address)
    return {
        'address': address,
        'abi': abi,
        'functions': [abi_to_signature(f) for f in filter_abi_by_type('function', abi)],
        'events': [abi_to_signature(e) for e in filter_abi_by_type('event', abi)],
    }
