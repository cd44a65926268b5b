"""
Polling trigger: one poll cycle per call, driven by the block-range cursor.

Each cycle reads the chain head, takes the next block range from the cursor and
runs the query for the configured event type over it. Records are returned to
the caller; the cursor state is persisted through a CursorStore.
"""
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from web3.exceptions import BlockNotFound

import abi_codec
import config
import token_ops
from abis import ERC20_ABI, ERC721_ABI
from connection import ConnectionHandle, close_connection, create_connection
from cursor_store import CursorStore
from errors import ParameterError, abi_errors, rpc_errors
from poll_cursor import BlockRange, PollCursor, PollCursorState
from utils import checksum, ether_to_wei, format_block, format_event, format_units, hex_str, parse_bool, wei_to_ether

logger = logging.getLogger(__name__)


class EventType(Enum):
    NEW_BLOCK = 'newBlock'
    CONTRACT_EVENT = 'contractEvent'
    ADDRESS_ACTIVITY = 'addressActivity'
    TOKEN_TRANSFER = 'tokenTransfer'
    NFT_TRANSFER = 'nftTransfer'


ACTIVITY_TYPES = ('all', 'incoming', 'outgoing')
FILTER_TYPES = ('none', 'from', 'to', 'either')


@dataclass
class TriggerConfig:
    event: EventType
    include_block_details: bool = False
    include_transactions: bool = False
    contract_address: Optional[str] = None
    abi: Optional[object] = None
    event_name: Optional[str] = None
    watch_address: Optional[str] = None
    activity_type: str = 'all'
    min_value: str = '0'
    token_address: Optional[str] = None
    token_filter_type: str = 'none'
    token_filter_address: Optional[str] = None
    batch_size: int = config.DEFAULT_BATCH_SIZE
    start_block: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'TriggerConfig':
        """Build from the trigger's node parameters (camelCase keys)"""
        try:
            event = EventType(data.get('event', EventType.NEW_BLOCK.value))
        except ValueError:
            raise ParameterError(f"Unknown trigger event: {data.get('event')}") from None

        activity_type = data.get('activityType') or 'all'
        if activity_type not in ACTIVITY_TYPES:
            raise ParameterError(f"Activity type must be one of {', '.join(ACTIVITY_TYPES)}")
        filter_type = data.get('tokenFilterType') or 'none'
        if filter_type not in FILTER_TYPES:
            raise ParameterError(f"Filter type must be one of {', '.join(FILTER_TYPES)}")

        start_block = data.get('startBlock')
        return cls(
            event=event,
            include_block_details=parse_bool(data.get('includeBlockDetails')),
            include_transactions=parse_bool(data.get('includeTransactions')),
            contract_address=data.get('contractAddress') or None,
            abi=data.get('abi') or None,
            event_name=data.get('eventName') or None,
            watch_address=data.get('watchAddress') or None,
            activity_type=activity_type,
            min_value=str(data.get('minValue') or '0'),
            token_address=data.get('tokenAddress') or None,
            token_filter_type=filter_type,
            token_filter_address=data.get('tokenFilterAddress') or None,
            batch_size=int(data.get('batchSize') or config.DEFAULT_BATCH_SIZE),
            # 0 means "start from the current head"
            start_block=int(start_block) if start_block not in (None, '', 0, '0') else None,
        )

    def require(self, *names):
        for name in names:
            if not getattr(self, name):
                raise ParameterError(f"Trigger parameter {name} is required for {self.event.value}")


class EthereumTrigger:
    def __init__(self, trigger_config: TriggerConfig, connection: ConnectionHandle):
        self.config = trigger_config
        self.connection = connection
        self.queries = {
            EventType.NEW_BLOCK: self._new_blocks,
            EventType.CONTRACT_EVENT: self._contract_events,
            EventType.ADDRESS_ACTIVITY: self._address_activity,
            EventType.TOKEN_TRANSFER: self._token_transfers,
            EventType.NFT_TRANSFER: self._nft_transfers,
        }

    @property
    def label(self) -> str:
        return f"{self.connection.network_id}/{self.config.event.value}"

    async def poll(self, state: PollCursorState) -> List[Dict]:
        """Run one poll cycle; ``state`` is updated in place"""
        cursor = PollCursor(state, self.config.batch_size, self.config.start_block, label=self.label)
        async with rpc_errors():
            head = await self.connection.w3.eth.block_number
        try:
            records = await cursor.run_cycle(head, self._query)
        finally:
            logger.debug(f"[{self.label}] Cursor {cursor.phase.value} at block {cursor.watermark} (head {head})")
        if records:
            logger.info(f"[{self.label}] Emitting {len(records)} record(s)")
        return records

    async def _query(self, block_range: BlockRange) -> List[Dict]:
        async with rpc_errors():
            return await self.queries[self.config.event](block_range)

    async def _get_block(self, number: int, full_transactions: bool):
        try:
            return await self.connection.w3.eth.get_block(number, full_transactions=full_transactions)
        except BlockNotFound:
            logger.debug(f"[{self.label}] Block {number} not available yet")
            return None

    # --- Queries ---

    async def _new_blocks(self, block_range: BlockRange) -> List[Dict]:
        records = []
        for number in block_range:
            if not self.config.include_block_details:
                records.append({'blockNumber': number, 'timestamp': int(time.time())})
                continue
            block = await self._get_block(number, self.config.include_transactions)
            if block:
                records.append(format_block(block, self.config.include_transactions))
        return records

    async def _contract_events(self, block_range: BlockRange) -> List[Dict]:
        self.config.require('contract_address', 'abi', 'event_name')
        address = await self.connection.resolve(self.config.contract_address)
        with abi_errors():
            contract = abi_codec.contract_for(self.connection.w3, self.config.abi, address)
            event = abi_codec.find_event(contract, self.config.event_name)
            topics = abi_codec.event_topics(event)

        logs = await self.connection.w3.eth.get_logs({
            'address': address,
            'topics': topics,
            'fromBlock': block_range.from_block,
            'toBlock': block_range.to_block,
        })

        name = event.abi['name']
        records = []
        for log in logs:
            try:
                args = abi_codec.decode_log(event, log)
            except abi_codec.LOG_DECODE_ERRORS as e:
                logger.debug(f"[{self.label}] Skipping undecodable {name} log: {e}")
                continue
            records.append(format_event(log, name, args))
        return records

    async def _address_activity(self, block_range: BlockRange) -> List[Dict]:
        self.config.require('watch_address')
        watched = (await self.connection.resolve(self.config.watch_address)).lower()
        min_value = ether_to_wei(self.config.min_value)
        activity_type = self.config.activity_type

        records = []
        for number in block_range:
            block = await self._get_block(number, True)
            if not block:
                continue
            for tx in block.get('transactions') or []:
                if not isinstance(tx, Mapping):
                    continue
                sender = (tx.get('from') or '').lower()
                recipient = (tx.get('to') or '').lower()
                is_from = sender == watched
                is_to = recipient == watched

                if not is_from and not is_to:
                    continue
                if activity_type == 'incoming' and not is_to:
                    continue
                if activity_type == 'outgoing' and not is_from:
                    continue
                value = tx.get('value', 0)
                if value < min_value:
                    continue

                records.append({
                    'type': 'outgoing' if is_from else 'incoming',
                    'hash': hex_str(tx.get('hash')),
                    'from': checksum(tx.get('from')),
                    'to': checksum(tx.get('to')),
                    'value': wei_to_ether(value),
                    'valueWei': str(value),
                    'blockNumber': number,
                    'timestamp': block.get('timestamp'),
                })
        return records

    async def _transfer_logs(self, abi: List[Dict], block_range: BlockRange):
        """Transfer logs of the configured token plus the decoded args, filtered by from / to / either"""
        self.config.require('token_address')
        token = await self.connection.resolve(self.config.token_address)
        filter_type = self.config.token_filter_type
        filter_address = None
        if self.config.token_filter_address and filter_type != 'none':
            filter_address = await self.connection.resolve(self.config.token_filter_address)

        # log filters cannot OR across indexed params, so "either" is filtered after the query
        topic_args = [
            filter_address if filter_type == 'from' else None,
            filter_address if filter_type == 'to' else None,
        ]
        event = abi_codec.find_event(abi_codec.contract_for(self.connection.w3, abi, token), 'Transfer')
        logs = await self.connection.w3.eth.get_logs({
            'address': token,
            'topics': abi_codec.event_topics(event, topic_args),
            'fromBlock': block_range.from_block,
            'toBlock': block_range.to_block,
        })

        matches = []
        for log in logs:
            try:
                args = abi_codec.decode_log(event, log)
            except abi_codec.LOG_DECODE_ERRORS as e:
                logger.debug(f"[{self.label}] Skipping non-matching Transfer log: {e}")
                continue
            if filter_type == 'either' and filter_address:
                if filter_address.lower() not in (args['from'].lower(), args['to'].lower()):
                    continue
            matches.append((log, args))
        return token, matches

    async def _token_transfers(self, block_range: BlockRange) -> List[Dict]:
        token, matches = await self._transfer_logs(ERC20_ABI, block_range)
        if not matches:
            return []

        info = await token_ops.get_token_metadata(self.connection, token)
        return [
            {
                'event': 'Transfer',
                'token': info,
                'from': args['from'],
                'to': args['to'],
                'value': format_units(args['value'], info['decimals']),
                'valueRaw': str(args['value']),
                'blockNumber': log.get('blockNumber'),
                'transactionHash': hex_str(log.get('transactionHash')),
                'logIndex': log.get('logIndex'),
            }
            for log, args in matches
        ]

    async def _nft_transfers(self, block_range: BlockRange) -> List[Dict]:
        token, matches = await self._transfer_logs(ERC721_ABI, block_range)
        return [
            {
                'event': 'Transfer',
                'contractAddress': token,
                'from': args['from'],
                'to': args['to'],
                'tokenId': str(args['tokenId']),
                'blockNumber': log.get('blockNumber'),
                'transactionHash': hex_str(log.get('transactionHash')),
                'logIndex': log.get('logIndex'),
            }
            for log, args in matches
        ]


async def poll_trigger(credentials, trigger_config: TriggerConfig, trigger_id: str, store: CursorStore,
                       connection: Optional[ConnectionHandle] = None) -> List[Dict]:
    """
    One poll for a configured trigger instance: load its cursor, run a cycle,
    persist the cursor (also when the cycle fails) and release the connection.
    """
    owned = connection is None
    if owned:
        connection = create_connection(credentials)
    state = store.load(trigger_id)
    try:
        return await EthereumTrigger(trigger_config, connection).poll(state)
    finally:
        store.save(trigger_id, state)
        if owned:
            await close_connection(connection)
