"""
NFT operations (ERC-721 and ERC-1155)
"""
import logging
from typing import Dict, List, Optional

from hexbytes import HexBytes

import abi_codec
from abis import ERC721_ABI, ERC1155_ABI
from connection import ConnectionHandle, GasOptions
from contract_ops import call_function, send_function
from errors import EthereumConnectorError, ParameterError
from metadata_fetcher import fetch_metadata
from utils import explorer_tx_url, is_zero_address

logger = logging.getLogger(__name__)


def _token_id(value) -> int:
    text = str(value).strip()
    try:
        return int(text, 16) if text.startswith('0x') else int(text)
    except ValueError:
        raise ParameterError(f"Invalid token id: {value}") from None


def _data_bytes(data) -> bytes:
    try:
        return bytes(HexBytes(data or '0x'))
    except ValueError:
        raise ParameterError(f"Invalid data, expected hex: {data}") from None


def _with_link(connection: ConnectionHandle, result: Dict) -> Dict:
    url = explorer_tx_url(connection.network, result['hash'])
    if url:
        result['explorerUrl'] = url
    return result


def erc721(connection: ConnectionHandle, contract: str):
    return abi_codec.contract_for(connection.w3, ERC721_ABI, contract)


def erc1155(connection: ConnectionHandle, contract: str):
    return abi_codec.contract_for(connection.w3, ERC1155_ABI, contract)


# --- ERC-721 ---

async def get_nft_info(connection: ConnectionHandle, contract_address: str, token_id: str,
                       fetch_metadata_flag: bool = True) -> Dict:
    contract = await connection.resolve(contract_address)
    token = _token_id(token_id)
    nft = erc721(connection, contract)

    name = await call_function(nft.functions.name())
    symbol = await call_function(nft.functions.symbol())
    owner = await call_function(nft.functions.ownerOf(token))

    # tokenURI is optional in the standard (metadata extension)
    try:
        token_uri = await call_function(nft.functions.tokenURI(token))
    except EthereumConnectorError as e:
        logger.debug(f"[{connection.network_id}] tokenURI unavailable for {contract} #{token}: {e}")
        token_uri = None

    result = {
        'contractAddress': contract,
        'tokenId': str(token),
        'owner': owner,
        'name': name,
        'symbol': symbol,
    }
    if token_uri:
        result['tokenUri'] = token_uri
        if fetch_metadata_flag:
            metadata = await fetch_metadata(token_uri)
            if metadata is not None:
                result['metadata'] = metadata
    return result


async def get_nft_owner(connection: ConnectionHandle, contract_address: str, token_id: str) -> Dict:
    contract = await connection.resolve(contract_address)
    token = _token_id(token_id)
    owner = await call_function(erc721(connection, contract).functions.ownerOf(token))
    return {'contractAddress': contract, 'tokenId': str(token), 'owner': owner}


async def get_nft_balance(connection: ConnectionHandle, contract_address: str, owner_address: str) -> Dict:
    contract = await connection.resolve(contract_address)
    owner = await connection.resolve(owner_address)
    balance = await call_function(erc721(connection, contract).functions.balanceOf(owner))
    return {'contractAddress': contract, 'owner': owner, 'balance': str(balance)}


async def transfer_nft(connection: ConnectionHandle, contract_address: str, to_address: str, token_id: str,
                       gas_options: Optional[GasOptions] = None) -> Dict:
    signer = connection.require_signer('transfer NFTs')
    contract = await connection.resolve(contract_address)
    to = await connection.resolve(to_address)
    token = _token_id(token_id)

    fn = erc721(connection, contract).functions['safeTransferFrom(address,address,uint256)'](signer.address, to, token)
    tx = await send_function(connection, fn, gas_options=gas_options, action='transfer NFTs')
    return _with_link(connection, {
        'hash': tx['hash'],
        'from': tx['from'],
        'to': to,
        'contractAddress': contract,
        'tokenId': str(token),
    })


async def approve_nft(connection: ConnectionHandle, contract_address: str, operator_address: str, token_id: str,
                      gas_options: Optional[GasOptions] = None) -> Dict:
    connection.require_signer('approve NFTs')
    contract = await connection.resolve(contract_address)
    operator = await connection.resolve(operator_address)
    token = _token_id(token_id)

    tx = await send_function(connection, erc721(connection, contract).functions.approve(operator, token),
                             gas_options=gas_options, action='approve NFTs')
    return _with_link(connection, {
        'hash': tx['hash'],
        'owner': tx['from'],
        'operator': operator,
        'contractAddress': contract,
        'tokenId': str(token),
    })


async def set_approval_for_all(connection: ConnectionHandle, contract_address: str, operator_address: str,
                               approved: bool, gas_options: Optional[GasOptions] = None) -> Dict:
    connection.require_signer('set approval')
    contract = await connection.resolve(contract_address)
    operator = await connection.resolve(operator_address)

    fn = erc721(connection, contract).functions.setApprovalForAll(operator, bool(approved))
    tx = await send_function(connection, fn, gas_options=gas_options, action='set approval')
    return _with_link(connection, {
        'hash': tx['hash'],
        'owner': tx['from'],
        'operator': operator,
        'contractAddress': contract,
        'approved': bool(approved),
    })


async def is_approved_for_all(connection: ConnectionHandle, contract_address: str, owner_address: str,
                              operator_address: str) -> Dict:
    contract = await connection.resolve(contract_address)
    owner = await connection.resolve(owner_address)
    operator = await connection.resolve(operator_address)
    approved = await call_function(erc721(connection, contract).functions.isApprovedForAll(owner, operator))
    return {'contractAddress': contract, 'owner': owner, 'operator': operator, 'isApproved': bool(approved)}


async def get_nft_approved(connection: ConnectionHandle, contract_address: str, token_id: str) -> Dict:
    contract = await connection.resolve(contract_address)
    token = _token_id(token_id)
    approved = await call_function(erc721(connection, contract).functions.getApproved(token))
    return {
        'contractAddress': contract,
        'tokenId': str(token),
        'approvedAddress': None if is_zero_address(approved) else approved,
    }


# --- ERC-1155 ---

async def get_erc1155_balance(connection: ConnectionHandle, contract_address: str, owner_address: str,
                              token_id: str, fetch_metadata_flag: bool = False) -> Dict:
    contract = await connection.resolve(contract_address)
    owner = await connection.resolve(owner_address)
    token = _token_id(token_id)
    multi = erc1155(connection, contract)

    balance = await call_function(multi.functions.balanceOf(owner, token))
    result = {
        'contractAddress': contract,
        'owner': owner,
        'tokenId': str(token),
        'balance': str(balance),
    }

    if fetch_metadata_flag:
        try:
            uri = await call_function(multi.functions.uri(token))
        except EthereumConnectorError as e:
            logger.debug(f"[{connection.network_id}] uri() unavailable for {contract} #{token}: {e}")
            uri = None
        if uri:
            # ERC-1155 clients substitute {id} with the 64-char lowercase hex id
            uri = uri.replace('{id}', format(token, '064x'))
            result['uri'] = uri
            metadata = await fetch_metadata(uri)
            if metadata is not None:
                result['metadata'] = metadata

    return result


async def get_erc1155_batch_balances(connection: ConnectionHandle, contract_address: str,
                                     owner_addresses: List[str], token_ids: List[str]) -> Dict:
    if len(owner_addresses) != len(token_ids):
        raise ParameterError("Owner addresses and token IDs must have same length")

    contract = await connection.resolve(contract_address)
    owners = [await connection.resolve(a) for a in owner_addresses]
    tokens = [_token_id(t) for t in token_ids]

    balances = await call_function(erc1155(connection, contract).functions.balanceOfBatch(owners, tokens))
    return {
        'contractAddress': contract,
        'balances': [
            {'owner': owner, 'tokenId': str(token), 'balance': str(balance)}
            for owner, token, balance in zip(owners, tokens, balances)
        ],
    }


async def transfer_erc1155(connection: ConnectionHandle, contract_address: str, to_address: str, token_id: str,
                           amount: str, data: str = '0x', gas_options: Optional[GasOptions] = None) -> Dict:
    signer = connection.require_signer('transfer tokens')
    contract = await connection.resolve(contract_address)
    to = await connection.resolve(to_address)
    token = _token_id(token_id)

    fn = erc1155(connection, contract).functions.safeTransferFrom(
        signer.address, to, token, int(amount), _data_bytes(data))
    tx = await send_function(connection, fn, gas_options=gas_options, action='transfer tokens')
    return _with_link(connection, {
        'hash': tx['hash'],
        'from': tx['from'],
        'to': to,
        'contractAddress': contract,
        'tokenId': str(token),
        'amount': str(amount),
    })


async def batch_transfer_erc1155(connection: ConnectionHandle, contract_address: str, to_address: str,
                                 token_ids: List[str], amounts: List[str], data: str = '0x',
                                 gas_options: Optional[GasOptions] = None) -> Dict:
    signer = connection.require_signer('transfer tokens')
    if len(token_ids) != len(amounts):
        raise ParameterError("Token IDs and amounts must have same length")

    contract = await connection.resolve(contract_address)
    to = await connection.resolve(to_address)
    tokens = [_token_id(t) for t in token_ids]

    fn = erc1155(connection, contract).functions.safeBatchTransferFrom(
        signer.address, to, tokens, [int(a) for a in amounts], _data_bytes(data))
    tx = await send_function(connection, fn, gas_options=gas_options, action='transfer tokens')
    return _with_link(connection, {
        'hash': tx['hash'],
        'from': tx['from'],
        'to': to,
        'contractAddress': contract,
        'tokenIds': [str(t) for t in tokens],
        'amounts': [str(a) for a in amounts],
    })
