"""
ENS operations: forward/reverse resolution, text records, avatars
"""
import logging
from typing import Dict, List, Optional

from ens.exceptions import ENSException, InvalidName
from web3 import Web3

import config
from connection import ConnectionHandle
from errors import UnresolvableNameError, rpc_errors
from utils import checksum

logger = logging.getLogger(__name__)


async def _resolver(connection: ConnectionHandle, name: str):
    try:
        async with rpc_errors():
            return await connection.w3.ens.resolver(name)
    except InvalidName:
        raise UnresolvableNameError(name) from None


async def _text(connection: ConnectionHandle, name: str, key: str) -> Optional[str]:
    """Single text record; unset or unsupported keys read as None"""
    try:
        async with rpc_errors():
            value = await connection.w3.ens.get_text(name, key)
    except ENSException as e:
        logger.debug(f"[{connection.network_id}] Text record {key} unavailable for {name}: {e}")
        return None
    return value or None


async def resolve_name(connection: ConnectionHandle, ens_name: str) -> Dict:
    try:
        async with rpc_errors():
            address = await connection.w3.ens.address(ens_name)
    except InvalidName:
        raise UnresolvableNameError(ens_name) from None
    return {'name': ens_name, 'address': checksum(address)}


async def lookup_address(connection: ConnectionHandle, address: str) -> Dict:
    address = await connection.resolve(address)
    async with rpc_errors():
        name = await connection.w3.ens.name(address)
    return {'address': address, 'name': name}


async def get_avatar(connection: ConnectionHandle, ens_or_address: str) -> Dict:
    """Avatar text record; an address is reverse-resolved first"""
    name = ens_or_address.strip()
    if Web3.is_address(name):
        async with rpc_errors():
            reverse = await connection.w3.ens.name(Web3.to_checksum_address(name))
        if not reverse:
            return {'name': ens_or_address, 'avatar': None}
        name = reverse

    if await _resolver(connection, name) is None:
        return {'name': name, 'avatar': None}
    return {'name': name, 'avatar': await _text(connection, name, 'avatar')}


async def get_ens_record(connection: ConnectionHandle, ens_name: str,
                         text_keys: Optional[List[str]] = None) -> Dict:
    text_keys = text_keys or config.DEFAULT_ENS_TEXT_KEYS
    if await _resolver(connection, ens_name) is None:
        return {'name': ens_name}

    async with rpc_errors():
        address = await connection.w3.ens.address(ens_name)

    records = {}
    for key in text_keys:
        value = await _text(connection, ens_name, key)
        if value:
            records[key] = value

    result = {'name': ens_name, 'address': checksum(address)}
    if records:
        result['textRecords'] = records
    avatar = await _text(connection, ens_name, 'avatar')
    if avatar:
        result['avatar'] = avatar
    return {k: v for k, v in result.items() if v is not None}


async def is_name_available(connection: ConnectionHandle, ens_name: str) -> Dict:
    """Simplified check: a name with no address record is reported available"""
    result = await resolve_name(connection, ens_name)
    return {
        'name': ens_name,
        'isAvailable': result['address'] is None,
        'currentOwner': result['address'],
    }


async def get_text_record(connection: ConnectionHandle, ens_name: str, key: str) -> Dict:
    if await _resolver(connection, ens_name) is None:
        return {'name': ens_name, 'key': key, 'value': None}
    return {'name': ens_name, 'key': key, 'value': await _text(connection, ens_name, key)}


async def get_text_records(connection: ConnectionHandle, ens_name: str, keys: List[str]) -> Dict:
    if await _resolver(connection, ens_name) is None:
        return {'name': ens_name, 'records': {key: None for key in keys}}
    records = {}
    for key in keys:
        records[key] = await _text(connection, ens_name, key)
    return {'name': ens_name, 'records': records}
