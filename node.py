"""
Action node: (resource, operation) dispatch table and the per-item execution loop
"""
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import account_ops
import config
import contract_ops
import ens_ops
import network_ops
import nft_ops
import token_ops
import transaction_ops
from connection import ConnectionHandle, GasOptions, close_connection, create_connection
from errors import ParameterError
from utils import parse_bool

logger = logging.getLogger(__name__)

Handler = Callable[[ConnectionHandle, 'Params'], Awaitable[Dict]]

OPERATIONS: Dict[Tuple[str, str], Handler] = {}


def operation(resource: str, name: str):
    """Register a handler for a (resource, operation) pair"""
    def register(func: Handler) -> Handler:
        OPERATIONS[(resource, name)] = func
        return func
    return register


class Params:
    """Typed access to one input item's node parameters"""

    def __init__(self, values: Optional[Dict] = None):
        self.values = values or {}

    def get(self, name: str, default=None):
        value = self.values.get(name)
        return default if value is None or value == '' else value

    def required(self, name: str):
        value = self.get(name)
        if value is None:
            raise ParameterError(f"Parameter '{name}' is required")
        return value

    def get_json(self, name: str, default=None):
        value = self.get(name)
        if value is None:
            return default
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ParameterError(f"Parameter '{name}' is not valid JSON: {e}") from None

    def get_bool(self, name: str, default: bool = False) -> bool:
        return parse_bool(self.get(name), default)

    def get_int(self, name: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ParameterError(f"Parameter '{name}' must be an integer") from None

    def get_float(self, name: str, default: Optional[float] = None) -> Optional[float]:
        value = self.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ParameterError(f"Parameter '{name}' must be a number") from None

    def get_list(self, name: str) -> List[str]:
        """Comma separated list ("1, 2,3")"""
        value = self.required(name)
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value]
        return [part.strip() for part in str(value).split(',') if part.strip()]

    @property
    def options(self) -> Dict:
        return self.get('additionalOptions', {}) or {}

    @property
    def gas_options(self) -> GasOptions:
        return GasOptions.from_options(self.options)

    def owner(self, connection: ConnectionHandle) -> str:
        """ownerAddress, falling back to the connection's wallet"""
        owner = self.get('ownerAddress') or connection.wallet_address
        if not owner:
            raise ParameterError("Owner address required")
        return owner


# --- account ---

@operation('account', 'getBalance')
async def _account_get_balance(connection, params):
    return await account_ops.get_balance(connection, params.required('address'))


@operation('account', 'getNonce')
async def _account_get_nonce(connection, params):
    return await account_ops.get_nonce(connection, params.required('address'), params.get('blockTag', 'latest'))


@operation('account', 'getCode')
async def _account_get_code(connection, params):
    return await account_ops.get_code(connection, params.required('address'))


@operation('account', 'getWalletInfo')
async def _account_get_wallet_info(connection, params):
    return await account_ops.get_wallet_info(connection)


@operation('account', 'getTokenBalance')
async def _account_get_token_balance(connection, params):
    return await account_ops.get_token_balance(connection, params.required('contractAddress'),
                                               params.owner(connection))


@operation('account', 'getMultipleTokenBalances')
async def _account_get_multiple_token_balances(connection, params):
    balances = await account_ops.get_multiple_token_balances(connection, params.get_list('tokenAddresses'),
                                                             params.owner(connection))
    return {'balances': balances}


@operation('account', 'getTokenAllowance')
async def _account_get_token_allowance(connection, params):
    return await account_ops.get_token_allowance(connection, params.required('contractAddress'),
                                                 params.owner(connection), params.required('spenderAddress'))


@operation('account', 'getTransactionHistory')
async def _account_get_transaction_history(connection, params):
    transactions = await account_ops.get_transaction_history(
        connection, params.required('address'), page=params.get_int('page', 1), limit=params.get_int('limit', 100),
        sort=params.get('sort', 'desc'))
    return {'transactions': transactions}


@operation('account', 'getTokenTransfers')
async def _account_get_token_transfers(connection, params):
    transfers = await account_ops.get_token_transfers(
        connection, params.required('address'), params.get('contractAddress'), page=params.get_int('page', 1),
        limit=params.get_int('limit', 100), sort=params.get('sort', 'desc'))
    return {'transfers': transfers}


@operation('account', 'getInternalTransactions')
async def _account_get_internal_transactions(connection, params):
    transactions = await account_ops.get_internal_transactions(
        connection, params.required('address'), page=params.get_int('page', 1), limit=params.get_int('limit', 100),
        sort=params.get('sort', 'desc'))
    return {'transactions': transactions}


# --- transaction ---

@operation('transaction', 'sendEth')
async def _tx_send_eth(connection, params):
    return await transaction_ops.send_eth(connection, params.required('toAddress'), params.required('amount'),
                                          params.gas_options)


@operation('transaction', 'getTransaction')
async def _tx_get_transaction(connection, params):
    tx = await transaction_ops.get_transaction(connection, params.required('txHash'))
    return tx or {'error': 'Transaction not found'}


@operation('transaction', 'getReceipt')
async def _tx_get_receipt(connection, params):
    receipt = await transaction_ops.get_transaction_receipt(connection, params.required('txHash'))
    return receipt or {'error': 'Receipt not found'}


@operation('transaction', 'waitForTransaction')
async def _tx_wait(connection, params):
    return await transaction_ops.wait_for_transaction(
        connection, params.required('txHash'), params.get_int('confirmations', 1),
        params.get_int('timeout', config.DEFAULT_CONFIRMATION_TIMEOUT_MS))


@operation('transaction', 'estimateGas')
async def _tx_estimate_gas(connection, params):
    options = params.options
    return await transaction_ops.estimate_gas(connection, params.required('toAddress'), options.get('value'),
                                              options.get('data'))


@operation('transaction', 'speedUp')
async def _tx_speed_up(connection, params):
    return await transaction_ops.speed_up_transaction(
        connection, params.required('txHash'),
        params.get_float('gasPriceMultiplier', config.DEFAULT_GAS_PRICE_MULTIPLIER))


@operation('transaction', 'cancel')
async def _tx_cancel(connection, params):
    return await transaction_ops.cancel_transaction(
        connection, params.required('txHash'),
        params.get_float('gasPriceMultiplier', config.DEFAULT_GAS_PRICE_MULTIPLIER))


@operation('transaction', 'sendRaw')
async def _tx_send_raw(connection, params):
    return await transaction_ops.send_raw_transaction(connection, params.required('signedTransaction'))


# --- contract ---

@operation('contract', 'read')
async def _contract_read(connection, params):
    result = await contract_ops.read_contract(connection, params.required('contractAddress'), params.required('abi'),
                                              params.required('functionName'), params.get_json('functionArgs', []))
    return {'result': result}


@operation('contract', 'write')
async def _contract_write(connection, params):
    return await contract_ops.write_contract(
        connection, params.required('contractAddress'), params.required('abi'), params.required('functionName'),
        params.get_json('functionArgs', []), params.options.get('value'), params.gas_options)


@operation('contract', 'deploy')
async def _contract_deploy(connection, params):
    return await contract_ops.deploy_contract(connection, params.required('abi'), params.required('bytecode'),
                                              params.get_json('functionArgs', []), params.gas_options,
                                              params.options.get('value'))


@operation('contract', 'getEvents')
async def _contract_get_events(connection, params):
    events = await contract_ops.get_contract_events(
        connection, params.required('contractAddress'), params.required('abi'), params.required('eventName'),
        params.get('fromBlock', 'earliest'), params.get('toBlock', 'latest'), params.get_json('eventFilters'))
    return {'events': events}


@operation('contract', 'encode')
async def _contract_encode(connection, params):
    encoded = contract_ops.encode_function_data(connection, params.required('abi'), params.required('functionName'),
                                                params.get_json('functionArgs', []))
    return {'encoded': encoded}


@operation('contract', 'decode')
async def _contract_decode(connection, params):
    return contract_ops.decode_function_data(connection, params.required('abi'), params.required('encodedData'))


@operation('contract', 'decodeResult')
async def _contract_decode_result(connection, params):
    result = contract_ops.decode_function_result(connection, params.required('abi'), params.required('functionName'),
                                                 params.required('encodedData'))
    return {'result': result}


@operation('contract', 'encodeTopics')
async def _contract_encode_topics(connection, params):
    topics = contract_ops.encode_event_topics(connection, params.required('abi'), params.required('eventName'),
                                              params.get_json('eventFilters'))
    return {'topics': topics}


@operation('contract', 'decodeLog')
async def _contract_decode_log(connection, params):
    return contract_ops.decode_event_log(connection, params.required('abi'), params.get('encodedData', '0x'),
                                         params.get_json('topics', []))


@operation('contract', 'estimateGas')
async def _contract_estimate_gas(connection, params):
    return await contract_ops.estimate_contract_gas(
        connection, params.required('contractAddress'), params.required('abi'), params.required('functionName'),
        params.get_json('functionArgs', []), params.options.get('value'))


@operation('contract', 'getAbi')
async def _contract_get_abi(connection, params):
    return await contract_ops.get_contract_abi(connection, params.required('contractAddress'))


# --- token (ERC-20) ---

@operation('token', 'getInfo')
async def _token_get_info(connection, params):
    return await token_ops.get_token_info(connection, params.required('contractAddress'))


@operation('token', 'getBalance')
async def _token_get_balance(connection, params):
    return await token_ops.get_token_balance(connection, params.required('contractAddress'), params.owner(connection))


@operation('token', 'transfer')
async def _token_transfer(connection, params):
    return await token_ops.transfer_token(connection, params.required('contractAddress'),
                                          params.required('toAddress'), params.required('tokenAmount'),
                                          params.gas_options)


@operation('token', 'approve')
async def _token_approve(connection, params):
    if params.get('approvalAmount', token_ops.UNLIMITED) == token_ops.UNLIMITED:
        amount = token_ops.UNLIMITED
    else:
        amount = params.required('specificApprovalAmount')
    return await token_ops.approve_token(connection, params.required('contractAddress'),
                                         params.required('spenderAddress'), amount, params.gas_options)


@operation('token', 'getAllowance')
async def _token_get_allowance(connection, params):
    return await token_ops.get_token_allowance(connection, params.required('contractAddress'),
                                               params.owner(connection), params.required('spenderAddress'))


@operation('token', 'transferFrom')
async def _token_transfer_from(connection, params):
    return await token_ops.transfer_token_from(connection, params.required('contractAddress'),
                                               params.required('fromAddress'), params.required('toAddress'),
                                               params.required('tokenAmount'), params.gas_options)


@operation('token', 'revoke')
async def _token_revoke(connection, params):
    return await token_ops.revoke_token_approval(connection, params.required('contractAddress'),
                                                 params.required('spenderAddress'), params.gas_options)


# --- nft (ERC-721) ---

@operation('nft', 'getInfo')
async def _nft_get_info(connection, params):
    return await nft_ops.get_nft_info(connection, params.required('contractAddress'), params.required('tokenId'),
                                      params.get_bool('fetchMetadata', True))


@operation('nft', 'getOwner')
async def _nft_get_owner(connection, params):
    return await nft_ops.get_nft_owner(connection, params.required('contractAddress'), params.required('tokenId'))


@operation('nft', 'getBalance')
async def _nft_get_balance(connection, params):
    return await nft_ops.get_nft_balance(connection, params.required('contractAddress'), params.owner(connection))


@operation('nft', 'transfer')
async def _nft_transfer(connection, params):
    return await nft_ops.transfer_nft(connection, params.required('contractAddress'), params.required('toAddress'),
                                      params.required('tokenId'), params.gas_options)


@operation('nft', 'approve')
async def _nft_approve(connection, params):
    return await nft_ops.approve_nft(connection, params.required('contractAddress'),
                                     params.required('operatorAddress'), params.required('tokenId'),
                                     params.gas_options)


@operation('nft', 'setApprovalForAll')
async def _nft_set_approval_for_all(connection, params):
    return await nft_ops.set_approval_for_all(connection, params.required('contractAddress'),
                                              params.required('operatorAddress'), params.get_bool('approved', True),
                                              params.gas_options)


@operation('nft', 'isApprovedForAll')
async def _nft_is_approved_for_all(connection, params):
    return await nft_ops.is_approved_for_all(connection, params.required('contractAddress'),
                                             params.owner(connection), params.required('operatorAddress'))


@operation('nft', 'getApproved')
async def _nft_get_approved(connection, params):
    return await nft_ops.get_nft_approved(connection, params.required('contractAddress'), params.required('tokenId'))


# --- erc1155 ---

@operation('erc1155', 'getBalance')
async def _erc1155_get_balance(connection, params):
    return await nft_ops.get_erc1155_balance(connection, params.required('contractAddress'),
                                             params.owner(connection), params.required('tokenId'),
                                             params.get_bool('fetchMetadata', False))


@operation('erc1155', 'getBatchBalances')
async def _erc1155_get_batch_balances(connection, params):
    token_ids = params.get_list('tokenIds')
    owner = params.owner(connection)
    return await nft_ops.get_erc1155_batch_balances(connection, params.required('contractAddress'),
                                                    [owner] * len(token_ids), token_ids)


@operation('erc1155', 'transfer')
async def _erc1155_transfer(connection, params):
    return await nft_ops.transfer_erc1155(connection, params.required('contractAddress'),
                                          params.required('toAddress'), params.required('tokenId'),
                                          params.required('erc1155Amount'), '0x', params.gas_options)


@operation('erc1155', 'batchTransfer')
async def _erc1155_batch_transfer(connection, params):
    return await nft_ops.batch_transfer_erc1155(connection, params.required('contractAddress'),
                                                params.required('toAddress'), params.get_list('tokenIds'),
                                                params.get_list('amounts'), '0x', params.gas_options)


# --- ens ---

@operation('ens', 'resolve')
async def _ens_resolve(connection, params):
    return await ens_ops.resolve_name(connection, params.required('ensName'))


@operation('ens', 'lookup')
async def _ens_lookup(connection, params):
    return await ens_ops.lookup_address(connection, params.required('ensOrAddress'))


@operation('ens', 'getAvatar')
async def _ens_get_avatar(connection, params):
    return await ens_ops.get_avatar(connection, params.required('ensOrAddress'))


@operation('ens', 'getRecord')
async def _ens_get_record(connection, params):
    keys = params.get_list('textKeys') if params.get('textKeys') else None
    return await ens_ops.get_ens_record(connection, params.required('ensName'), keys)


@operation('ens', 'isAvailable')
async def _ens_is_available(connection, params):
    return await ens_ops.is_name_available(connection, params.required('ensName'))


@operation('ens', 'getText')
async def _ens_get_text(connection, params):
    return await ens_ops.get_text_record(connection, params.required('ensName'), params.required('textKey'))


@operation('ens', 'getTextRecords')
async def _ens_get_text_records(connection, params):
    return await ens_ops.get_text_records(connection, params.required('ensName'), params.get_list('textKeys'))


# --- network ---

@operation('network', 'getBlockNumber')
async def _network_get_block_number(connection, params):
    return await network_ops.get_block_number(connection)


@operation('network', 'getBlock')
async def _network_get_block(connection, params):
    block = await network_ops.get_block(connection, params.get('blockIdentifier', 'latest'),
                                        params.get_bool('includeTransactions'))
    return block or {'error': 'Block not found'}


@operation('network', 'getLatestBlock')
async def _network_get_latest_block(connection, params):
    return await network_ops.get_latest_block(connection, params.get_bool('includeTransactions'))


@operation('network', 'getGasPrice')
async def _network_get_gas_price(connection, params):
    return await network_ops.get_gas_price(connection)


@operation('network', 'getFeeData')
async def _network_get_fee_data(connection, params):
    return await network_ops.get_fee_data(connection)


@operation('network', 'getSuggestedGasPrices')
async def _network_get_suggested_gas_prices(connection, params):
    return await network_ops.get_suggested_gas_prices(connection)


@operation('network', 'getNetworkInfo')
async def _network_get_network_info(connection, params):
    return await network_ops.get_network_info(connection)


@operation('network', 'getBlockTransactionCount')
async def _network_get_block_transaction_count(connection, params):
    return await network_ops.get_block_transaction_count(connection, params.get('blockIdentifier', 'latest'))


@operation('network', 'getChainId')
async def _network_get_chain_id(connection, params):
    return await network_ops.get_chain_id(connection)


@operation('network', 'isSyncing')
async def _network_is_syncing(connection, params):
    return await network_ops.is_syncing(connection)


@operation('network', 'getLogs')
async def _network_get_logs(connection, params):
    logs = await network_ops.get_logs(connection, params.get('filterAddress'), params.get_json('topics', []),
                                      params.get('fromBlock', 'latest'), params.get('toBlock', 'latest'))
    return {'logs': logs}


@operation('network', 'getUncle')
async def _network_get_uncle(connection, params):
    uncle = await network_ops.get_uncle(connection, params.get('blockIdentifier', 'latest'),
                                        params.get_int('uncleIndex', 0))
    return uncle or {'error': 'Uncle not found'}


# --- Execution ---

def get_handler(resource: str, name: str) -> Handler:
    handler = OPERATIONS.get((resource, name))
    if handler is None:
        raise ParameterError(f"Operation {name} is not supported for resource {resource}")
    return handler


async def execute(credentials, resource: str, operation_name: str, items: List[Dict],
                  continue_on_fail: bool = False, connection: Optional[ConnectionHandle] = None) -> List[Dict]:
    """
    Run one operation over every input item, in order.

    A connection is created for the invocation unless one is passed in. With
    ``continue_on_fail`` a failing item produces ``{"error": message}`` and the
    remaining items still run; otherwise the first error propagates.
    """
    handler = get_handler(resource, operation_name)
    owned = connection is None
    if owned:
        connection = create_connection(credentials)

    results = []
    try:
        for index, item in enumerate(items or [{}]):
            try:
                results.append(await handler(connection, Params(item)))
            except Exception as e:
                if not continue_on_fail:
                    raise
                logger.warning(f"[{connection.network_id}] {resource}.{operation_name} item {index} failed: {e}")
                results.append({'error': str(e)})
    finally:
        if owned:
            await close_connection(connection)

    return results
