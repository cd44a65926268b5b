"""
Conversions, formatting and validation helpers shared by every operation
"""
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, localcontext
from typing import Dict, Optional

from hexbytes import HexBytes
from web3 import Web3

from errors import ParameterError

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
MAX_UINT256 = 2 ** 256 - 1

_HASH_RE = re.compile(r'^0x[0-9a-fA-F]{64}$')


# --- Unit conversions ---

def format_units(amount, decimals: int = 18) -> str:
    """Render an integer amount of base units as a decimal string ("1.5", "0.0")"""
    value = int(amount)
    sign = '-' if value < 0 else ''
    whole, frac = divmod(abs(value), 10 ** decimals)
    frac_str = str(frac).rjust(decimals, '0').rstrip('0') if decimals else ''
    return f"{sign}{whole}.{frac_str or '0'}"


def parse_units(amount, decimals: int = 18) -> int:
    """Parse a decimal amount ("1.5") into integer base units"""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ParameterError(f"Invalid amount: {amount}") from None
    if not value.is_finite():
        raise ParameterError(f"Invalid amount: {amount}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ParameterError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def wei_to_ether(wei) -> str:
    return format_units(wei, 18)


def ether_to_wei(ether) -> int:
    return parse_units(ether, 18)


def wei_to_gwei(wei) -> str:
    return format_units(wei, 9)


def gwei_to_wei(gwei) -> int:
    return parse_units(gwei, 9)


# --- Parameter parsing ---

def parse_bool(value, default: bool = False) -> bool:
    """Workflow parameters arrive as real booleans or as their string spellings"""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


# --- Hex / JSON helpers ---

def hex_str(value) -> Optional[str]:
    """0x-prefixed hex for bytes-like values; strings pass through"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return Web3.to_hex(value)


def to_json_safe(value):
    """Convert web3 results into plain JSON values, integers as decimal strings"""
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, HexBytes)):
        return Web3.to_hex(value)
    if isinstance(value, Mapping):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return str(value)


def timestamp_to_iso(timestamp: int) -> str:
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()


# --- Validation ---

def is_valid_tx_hash(value: str) -> bool:
    return bool(value) and bool(_HASH_RE.match(value))


def is_valid_private_key(key: str) -> bool:
    if not key:
        return False
    formatted = key if key.startswith('0x') else '0x' + key
    return bool(_HASH_RE.match(formatted))


def require_tx_hash(value: str) -> str:
    value = (value or '').strip()
    if not is_valid_tx_hash(value):
        raise ParameterError(f"Invalid transaction hash: {value}")
    return value


def is_zero_address(address: Optional[str]) -> bool:
    return address is None or address.lower() == ZERO_ADDRESS


def checksum(address: Optional[str]) -> Optional[str]:
    return Web3.to_checksum_address(address) if address else address


# --- Explorer links ---

def explorer_tx_url(network, tx_hash: str) -> Optional[str]:
    if not network.explorer or not tx_hash:
        return None
    return f"{network.explorer}/tx/{tx_hash}"


def explorer_address_url(network, address: str) -> Optional[str]:
    if not network.explorer or not address:
        return None
    return f"{network.explorer}/address/{address}"


# --- Record formatting ---

def format_transaction(tx: Mapping, receipt: Optional[Mapping] = None, network=None) -> Dict:
    """Flatten a transaction (and optionally its receipt) into an output record"""
    tx_hash = hex_str(tx.get('hash'))
    result = {
        'hash': tx_hash,
        'from': checksum(tx.get('from')),
        'to': checksum(tx.get('to')),
        'value': wei_to_ether(tx.get('value', 0)),
        'valueWei': str(tx.get('value', 0)),
        'gasLimit': str(tx.get('gas', 0)),
        'nonce': tx.get('nonce'),
        'data': hex_str(tx.get('input', tx.get('data', '0x'))),
        'chainId': int(tx['chainId'], 16) if isinstance(tx.get('chainId'), str) else tx.get('chainId'),
    }

    # Gas pricing
    if tx.get('gasPrice'):
        result['gasPrice'] = wei_to_gwei(tx['gasPrice'])
    if tx.get('maxFeePerGas'):
        result['maxFeePerGas'] = wei_to_gwei(tx['maxFeePerGas'])
    if tx.get('maxPriorityFeePerGas'):
        result['maxPriorityFeePerGas'] = wei_to_gwei(tx['maxPriorityFeePerGas'])

    if receipt:
        result['blockNumber'] = receipt.get('blockNumber')
        result['blockHash'] = hex_str(receipt.get('blockHash'))
        result['status'] = receipt.get('status')
        result['gasUsed'] = str(receipt.get('gasUsed', 0))
        if receipt.get('effectiveGasPrice'):
            result['effectiveGasPrice'] = wei_to_gwei(receipt['effectiveGasPrice'])
    elif tx.get('blockNumber') is not None:
        result['blockNumber'] = tx.get('blockNumber')
        result['blockHash'] = hex_str(tx.get('blockHash'))

    if network is not None:
        url = explorer_tx_url(network, tx_hash)
        if url:
            result['explorerUrl'] = url

    return result


def format_receipt(receipt: Mapping) -> Dict:
    status = receipt.get('status')
    return {
        'hash': hex_str(receipt.get('transactionHash')),
        'status': status if status is not None else -1,
        'blockNumber': receipt.get('blockNumber'),
        'blockHash': hex_str(receipt.get('blockHash')),
        'from': checksum(receipt.get('from')),
        'to': checksum(receipt.get('to')),
        'gasUsed': str(receipt.get('gasUsed', 0)),
        'effectiveGasPrice': str(receipt.get('effectiveGasPrice') or 0),
        'cumulativeGasUsed': str(receipt.get('cumulativeGasUsed', 0)),
        'logs': len(receipt.get('logs') or []),
        'contractAddress': checksum(receipt.get('contractAddress')),
    }


def format_block(block: Mapping, include_transactions: bool = False) -> Dict:
    transactions = block.get('transactions') or []
    result = {
        'number': block.get('number'),
        'hash': hex_str(block.get('hash')) or '',
        'parentHash': hex_str(block.get('parentHash')),
        'timestamp': block.get('timestamp'),
        'nonce': hex_str(block.get('nonce')),
        'difficulty': str(block.get('difficulty', 0)),
        'gasLimit': str(block.get('gasLimit', 0)),
        'gasUsed': str(block.get('gasUsed', 0)),
        'miner': checksum(block.get('miner')),
        'extraData': hex_str(block.get('extraData')),
        'transactionCount': len(transactions),
    }

    if block.get('baseFeePerGas') is not None:
        result['baseFeePerGas'] = wei_to_gwei(block['baseFeePerGas'])

    if include_transactions:
        result['transactions'] = [
            format_transaction(tx) if isinstance(tx, Mapping) else hex_str(tx)
            for tx in transactions
        ]

    return result


def format_event(log: Mapping, event_name: Optional[str] = None, args: Optional[Dict] = None) -> Dict:
    return {
        'address': checksum(log.get('address')),
        'blockNumber': log.get('blockNumber'),
        'blockHash': hex_str(log.get('blockHash')),
        'transactionHash': hex_str(log.get('transactionHash')),
        'transactionIndex': log.get('transactionIndex'),
        'logIndex': log.get('logIndex'),
        'removed': bool(log.get('removed', False)),
        'eventName': event_name,
        'args': to_json_safe(args) if args is not None else None,
        'data': hex_str(log.get('data')),
        'topics': [hex_str(t) for t in log.get('topics', [])],
    }


def format_fee_data(fee_data) -> Dict:
    def gwei(value):
        return wei_to_gwei(value) if value else None

    return {
        'gasPrice': gwei(fee_data.gas_price),
        'maxFeePerGas': gwei(fee_data.max_fee_per_gas),
        'maxPriorityFeePerGas': gwei(fee_data.max_priority_fee_per_gas),
    }


def format_gas_estimate(gas_limit: int, fee_data) -> Dict:
    price = fee_data.max_fee_per_gas or fee_data.gas_price or 0
    cost = gas_limit * price
    result = {
        'gasLimit': str(gas_limit),
        'estimatedCostWei': str(cost),
        'estimatedCostEth': wei_to_ether(cost),
    }
    result.update({k: v for k, v in format_fee_data(fee_data).items() if v is not None})
    return result


BLOCK_TAGS = ('latest', 'earliest', 'pending', 'safe', 'finalized')


def block_identifier(value, default='latest'):
    """Block number, tag or hash from user input ("latest", "123", 123, "0x...")"""
    if value is None or value == '':
        return default
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if value in BLOCK_TAGS:
        return value
    if value.startswith('0x'):
        return value if len(value) == 66 else int(value, 16)
    try:
        return int(value)
    except ValueError:
        raise ParameterError(f"Invalid block identifier: {value}") from None
