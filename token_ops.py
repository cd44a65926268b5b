"""
ERC-20 token operations
"""
from typing import Dict, Optional

import abi_codec
from abis import ERC20_ABI
from connection import ConnectionHandle, GasOptions
from contract_ops import call_function, send_function
from utils import MAX_UINT256, explorer_tx_url, format_units, parse_units

UNLIMITED = 'unlimited'


def erc20(connection: ConnectionHandle, token: str):
    return abi_codec.contract_for(connection.w3, ERC20_ABI, token)


async def get_token_metadata(connection: ConnectionHandle, token: str) -> Dict:
    """name / symbol / decimals of an already resolved token address"""
    contract = erc20(connection, token)
    name = await call_function(contract.functions.name())
    symbol = await call_function(contract.functions.symbol())
    decimals = await call_function(contract.functions.decimals())
    return {'address': token, 'name': name, 'symbol': symbol, 'decimals': int(decimals)}


def _with_link(connection: ConnectionHandle, result: Dict) -> Dict:
    url = explorer_tx_url(connection.network, result['hash'])
    if url:
        result['explorerUrl'] = url
    return result


async def get_token_info(connection: ConnectionHandle, token_address: str) -> Dict:
    token = await connection.resolve(token_address)
    info = await get_token_metadata(connection, token)
    total_supply = await call_function(erc20(connection, token).functions.totalSupply())
    info['totalSupply'] = format_units(total_supply, info['decimals'])
    info['totalSupplyRaw'] = str(total_supply)
    return info


async def get_token_balance(connection: ConnectionHandle, token_address: str, owner_address: str) -> Dict:
    token = await connection.resolve(token_address)
    owner = await connection.resolve(owner_address)
    info = await get_token_metadata(connection, token)
    balance = await call_function(erc20(connection, token).functions.balanceOf(owner))
    return {
        'token': info,
        'owner': owner,
        'balance': format_units(balance, info['decimals']),
        'balanceRaw': str(balance),
    }


async def transfer_token(connection: ConnectionHandle, token_address: str, to_address: str, amount: str,
                         gas_options: Optional[GasOptions] = None) -> Dict:
    connection.require_signer('transfer tokens')
    token = await connection.resolve(token_address)
    to = await connection.resolve(to_address)
    contract = erc20(connection, token)

    decimals = await call_function(contract.functions.decimals())
    amount_raw = parse_units(amount, int(decimals))

    tx = await send_function(connection, contract.functions.transfer(to, amount_raw),
                             gas_options=gas_options, action='transfer tokens')
    return _with_link(connection, {
        'hash': tx['hash'],
        'from': tx['from'],
        'to': to,
        'token': token,
        'amount': str(amount),
        'amountRaw': str(amount_raw),
    })


async def approve_token(connection: ConnectionHandle, token_address: str, spender_address: str, amount: str,
                        gas_options: Optional[GasOptions] = None) -> Dict:
    """Approve a specific amount, or "unlimited" (2^256 - 1)"""
    connection.require_signer('approve tokens')
    token = await connection.resolve(token_address)
    spender = await connection.resolve(spender_address)
    contract = erc20(connection, token)

    if str(amount).lower() == UNLIMITED:
        amount_raw = MAX_UINT256
        display_amount = UNLIMITED
    else:
        decimals = await call_function(contract.functions.decimals())
        amount_raw = parse_units(amount, int(decimals))
        display_amount = str(amount)

    tx = await send_function(connection, contract.functions.approve(spender, amount_raw),
                             gas_options=gas_options, action='approve tokens')
    return _with_link(connection, {
        'hash': tx['hash'],
        'owner': tx['from'],
        'spender': spender,
        'token': token,
        'amount': display_amount,
        'amountRaw': str(amount_raw),
    })


async def get_token_allowance(connection: ConnectionHandle, token_address: str, owner_address: str,
                              spender_address: str) -> Dict:
    token = await connection.resolve(token_address)
    owner = await connection.resolve(owner_address)
    spender = await connection.resolve(spender_address)
    contract = erc20(connection, token)

    decimals = int(await call_function(contract.functions.decimals()))
    allowance = await call_function(contract.functions.allowance(owner, spender))

    # anything above half the range is treated as an infinite approval
    is_unlimited = allowance >= MAX_UINT256 // 2
    return {
        'token': token,
        'owner': owner,
        'spender': spender,
        'allowance': UNLIMITED if is_unlimited else format_units(allowance, decimals),
        'allowanceRaw': str(allowance),
        'decimals': decimals,
        'isUnlimited': is_unlimited,
    }


async def transfer_token_from(connection: ConnectionHandle, token_address: str, from_address: str,
                              to_address: str, amount: str, gas_options: Optional[GasOptions] = None) -> Dict:
    """Spend an allowance granted to the connection's wallet"""
    connection.require_signer('transfer tokens')
    token = await connection.resolve(token_address)
    sender = await connection.resolve(from_address)
    to = await connection.resolve(to_address)
    contract = erc20(connection, token)

    decimals = await call_function(contract.functions.decimals())
    amount_raw = parse_units(amount, int(decimals))

    tx = await send_function(connection, contract.functions.transferFrom(sender, to, amount_raw),
                             gas_options=gas_options, action='transfer tokens')
    return _with_link(connection, {
        'hash': tx['hash'],
        'executor': tx['from'],
        'from': sender,
        'to': to,
        'token': token,
        'amount': str(amount),
        'amountRaw': str(amount_raw),
    })


async def revoke_token_approval(connection: ConnectionHandle, token_address: str, spender_address: str,
                                gas_options: Optional[GasOptions] = None) -> Dict:
    result = await approve_token(connection, token_address, spender_address, '0', gas_options)
    return {k: result[k] for k in ('hash', 'owner', 'spender', 'token', 'explorerUrl') if k in result}
