"""
Transaction operations: send, look up, wait, estimate, replace
"""
import asyncio
import logging
import time
from decimal import Decimal
from typing import Dict, Optional

from eth_account import Account
from eth_utils import ValidationError
from web3.exceptions import TransactionNotFound

import config
from connection import ConnectionHandle, GasOptions, get_fee_data
from errors import EthereumConnectorError, ParameterError, WaitTimeoutError, rpc_errors
from utils import ether_to_wei, format_gas_estimate, format_receipt, format_transaction, hex_str, require_tx_hash

logger = logging.getLogger(__name__)

CANCEL_GAS_LIMIT = 21000


def _bump(value: Optional[int], multiplier: float) -> Optional[int]:
    if not value:
        return None
    return int(Decimal(str(multiplier)) * value)


async def _fetch_transaction(connection: ConnectionHandle, tx_hash: str):
    async with rpc_errors():
        try:
            return await connection.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None


async def _fetch_receipt(connection: ConnectionHandle, tx_hash: str):
    async with rpc_errors():
        try:
            return await connection.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None


async def _pending_original(connection: ConnectionHandle, tx_hash: str, action: str):
    """The transaction being replaced; it must exist and still be unmined"""
    tx_hash = require_tx_hash(tx_hash)
    original = await _fetch_transaction(connection, tx_hash)
    if original is None:
        raise EthereumConnectorError("Original transaction not found")
    if await _fetch_receipt(connection, tx_hash) is not None:
        raise EthereumConnectorError(f"Transaction already confirmed, cannot {action}")
    return original


async def send_eth(connection: ConnectionHandle, to_address: str, amount: str,
                   gas_options: Optional[GasOptions] = None) -> Dict:
    signer = connection.require_signer('send transactions')
    to = await connection.resolve(to_address)
    async with rpc_errors():
        tx = await signer.send_transaction({'to': to, 'value': ether_to_wei(amount)}, gas_options)
    return format_transaction(tx, None, connection.network)


async def get_transaction(connection: ConnectionHandle, tx_hash: str) -> Optional[Dict]:
    tx_hash = require_tx_hash(tx_hash)
    tx = await _fetch_transaction(connection, tx_hash)
    if tx is None:
        return None
    receipt = await _fetch_receipt(connection, tx_hash)
    return format_transaction(tx, receipt, connection.network)


async def get_transaction_receipt(connection: ConnectionHandle, tx_hash: str) -> Optional[Dict]:
    receipt = await _fetch_receipt(connection, require_tx_hash(tx_hash))
    if receipt is None:
        return None
    return format_receipt(receipt)


async def wait_for_transaction(connection: ConnectionHandle, tx_hash: str, confirmations: int = 1,
                               timeout_ms: int = config.DEFAULT_CONFIRMATION_TIMEOUT_MS) -> Dict:
    """
    Poll until the transaction is mined and buried under ``confirmations`` blocks.

    Raises WaitTimeoutError once ``timeout_ms`` has elapsed.
    """
    tx_hash = require_tx_hash(tx_hash)
    confirmations = max(int(confirmations), 1)
    deadline = time.monotonic() + timeout_ms / 1000

    while True:
        receipt = await _fetch_receipt(connection, tx_hash)
        if receipt is not None:
            async with rpc_errors():
                head = await connection.w3.eth.block_number
            if head - receipt['blockNumber'] + 1 >= confirmations:
                logger.info(f"[{connection.network_id}] {tx_hash} confirmed in block {receipt['blockNumber']}")
                return {
                    'hash': tx_hash,
                    'status': receipt.get('status', -1),
                    'confirmations': confirmations,
                    'blockNumber': receipt['blockNumber'],
                    'gasUsed': str(receipt.get('gasUsed', 0)),
                }

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError(
                f"Transaction {tx_hash} not confirmed with {confirmations} confirmation(s) within {timeout_ms} ms"
            )
        await asyncio.sleep(min(config.CONFIRMATION_POLL_INTERVAL, remaining))


async def estimate_gas(connection: ConnectionHandle, to_address: str, value: Optional[str] = None,
                       data: Optional[str] = None) -> Dict:
    request = {'to': await connection.resolve(to_address)}
    if value:
        request['value'] = ether_to_wei(value)
    if data:
        request['data'] = data
    if connection.wallet_address:
        request['from'] = connection.wallet_address

    async with rpc_errors():
        gas_limit = await connection.w3.eth.estimate_gas(request)
        fee_data = await get_fee_data(connection.w3, connection.network)
    return format_gas_estimate(gas_limit, fee_data)


async def speed_up_transaction(connection: ConnectionHandle, tx_hash: str,
                               multiplier: float = config.DEFAULT_GAS_PRICE_MULTIPLIER) -> Dict:
    """Resubmit a pending transaction with the same nonce and fees scaled by ``multiplier``"""
    signer = connection.require_signer('speed up transactions')
    original = await _pending_original(connection, tx_hash, 'speed up')

    gas_options = GasOptions(nonce=original['nonce'], gas_limit=original.get('gas'))
    if original.get('maxFeePerGas'):
        gas_options.max_fee_per_gas = _bump(original['maxFeePerGas'], multiplier)
        gas_options.max_priority_fee_per_gas = _bump(original.get('maxPriorityFeePerGas'), multiplier)
    elif original.get('gasPrice'):
        gas_options.gas_price = _bump(original['gasPrice'], multiplier)

    replacement = {
        'to': original.get('to'),
        'value': original.get('value', 0),
        'data': hex_str(original.get('input', '0x')),
    }
    async with rpc_errors():
        tx = await signer.send_transaction(replacement, gas_options)
    logger.info(f"[{connection.network_id}] Replaced {tx_hash} with {tx['hash']} (nonce {original['nonce']})")
    return format_transaction(tx, None, connection.network)


async def cancel_transaction(connection: ConnectionHandle, tx_hash: str,
                             multiplier: float = config.DEFAULT_GAS_PRICE_MULTIPLIER) -> Dict:
    """Replace a pending transaction with a zero-value self transfer at the same nonce"""
    signer = connection.require_signer('cancel transactions')
    original = await _pending_original(connection, tx_hash, 'cancel')

    async with rpc_errors():
        fee_data = await get_fee_data(connection.w3, connection.network)

    gas_options = GasOptions(nonce=original['nonce'], gas_limit=CANCEL_GAS_LIMIT)
    if fee_data.supports_eip1559:
        gas_options.max_fee_per_gas = _bump(original.get('maxFeePerGas') or fee_data.max_fee_per_gas, multiplier)
        gas_options.max_priority_fee_per_gas = _bump(
            original.get('maxPriorityFeePerGas') or fee_data.max_priority_fee_per_gas, multiplier
        )
    elif fee_data.gas_price:
        gas_options.gas_price = _bump(original.get('gasPrice') or fee_data.gas_price, multiplier)

    async with rpc_errors():
        tx = await signer.send_transaction({'to': signer.address, 'value': 0}, gas_options)
    logger.info(f"[{connection.network_id}] Cancelled {tx_hash} with {tx['hash']} (nonce {original['nonce']})")
    return format_transaction(tx, None, connection.network)


async def send_raw_transaction(connection: ConnectionHandle, signed_transaction: str) -> Dict:
    signed_transaction = (signed_transaction or '').strip()
    if not signed_transaction.startswith('0x'):
        signed_transaction = '0x' + signed_transaction
    try:
        sender = Account.recover_transaction(signed_transaction)
    except (ValueError, TypeError, ValidationError):
        raise ParameterError("Signed transaction is not a valid RLP-encoded transaction") from None

    async with rpc_errors():
        tx_hash = hex_str(await connection.w3.eth.send_raw_transaction(signed_transaction))
    logger.info(f"[{connection.network_id}] Broadcast raw transaction {tx_hash} from {sender}")
    return format_transaction({'hash': tx_hash, 'from': sender}, None, connection.network)
