"""
Polling trigger cycles against the in-memory node
"""
import logging

import aiohttp
import pytest
from eth_abi import encode
from hexbytes import HexBytes

import trigger
from abis import ERC20_ABI
from conftest import ALICE, BOB, HARDHAT_ADDRESS, TOKEN, event_topic
from cursor_store import MemoryCursorStore
from errors import NetworkTransportError, ParameterError
from poll_cursor import PollCursorState
from trigger import EthereumTrigger, EventType, TriggerConfig, poll_trigger

TRANSFER_TOPIC = event_topic(ERC20_ABI, 'Transfer')
COLLECTION = '0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D'


def address_topic(address):
    return '0x' + encode(['address'], [address]).hex()


def erc20_transfer(block_number, sender, recipient, value, log_index=0):
    return {
        'address': TOKEN.lower(),
        'blockNumber': block_number,
        'transactionHash': HexBytes(bytes([block_number, log_index]) * 16),
        'logIndex': log_index,
        'topics': [TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        'data': '0x' + encode(['uint256'], [value]).hex(),
    }


def erc721_transfer(block_number, sender, recipient, token_id):
    return {
        'address': COLLECTION.lower(),
        'blockNumber': block_number,
        'transactionHash': HexBytes(bytes([block_number]) * 32),
        'logIndex': 0,
        'topics': [TRANSFER_TOPIC, address_topic(sender), address_topic(recipient),
                   '0x' + encode(['uint256'], [token_id]).hex()],
        'data': '0x',
    }


def register_token(eth):
    eth.returns(TOKEN, ERC20_ABI, 'name', ['string'], ['Dai'])
    eth.returns(TOKEN, ERC20_ABI, 'symbol', ['string'], ['DAI'])
    eth.returns(TOKEN, ERC20_ABI, 'decimals', ['uint8'], [18])


class TestTriggerConfig:
    def test_defaults(self):
        trigger_config = TriggerConfig.from_dict({})
        assert trigger_config.event == EventType.NEW_BLOCK
        assert trigger_config.batch_size == 100
        assert trigger_config.start_block is None

    def test_camel_case_keys(self):
        trigger_config = TriggerConfig.from_dict({
            'event': 'tokenTransfer', 'tokenAddress': TOKEN, 'tokenFilterType': 'either',
            'tokenFilterAddress': ALICE, 'batchSize': '25', 'startBlock': '1000',
        })
        assert trigger_config.event == EventType.TOKEN_TRANSFER
        assert trigger_config.token_filter_type == 'either'
        assert trigger_config.batch_size == 25
        assert trigger_config.start_block == 1000

    def test_start_block_zero_means_head(self):
        assert TriggerConfig.from_dict({'startBlock': 0}).start_block is None

    def test_unknown_event(self):
        with pytest.raises(ParameterError):
            TriggerConfig.from_dict({'event': 'pendingTransaction'})

    def test_unknown_filter_type(self):
        with pytest.raises(ParameterError):
            TriggerConfig.from_dict({'event': 'tokenTransfer', 'tokenFilterType': 'both'})

    def test_flag_strings(self):
        trigger_config = TriggerConfig.from_dict({'includeBlockDetails': 'false', 'includeTransactions': 'true'})
        assert trigger_config.include_block_details is False
        assert trigger_config.include_transactions is True


class TestNewBlocks:
    @pytest.mark.asyncio
    async def test_first_poll_emits_head(self, connection):
        state = PollCursorState()
        records = await EthereumTrigger(TriggerConfig(EventType.NEW_BLOCK), connection).poll(state)
        assert [r['blockNumber'] for r in records] == [100]
        assert isinstance(records[0]['timestamp'], int)
        assert state.last_processed_block == 100

    @pytest.mark.asyncio
    async def test_no_new_blocks(self, connection):
        state = PollCursorState(last_processed_block=100)
        assert await EthereumTrigger(TriggerConfig(EventType.NEW_BLOCK), connection).poll(state) == []

    @pytest.mark.asyncio
    async def test_cursor_phase_is_logged(self, connection, caplog):
        caplog.set_level(logging.DEBUG, logger='trigger')
        await EthereumTrigger(TriggerConfig(EventType.NEW_BLOCK), connection).poll(PollCursorState(98))
        await EthereumTrigger(TriggerConfig(EventType.NEW_BLOCK), connection).poll(PollCursorState(100))
        assert 'Cursor advanced at block 100 (head 100)' in caplog.text
        assert 'Cursor idle at block 100 (head 100)' in caplog.text

    @pytest.mark.asyncio
    async def test_block_details(self, connection, w3):
        for number in (98, 99, 100):
            w3.eth.blocks[number] = {'number': number, 'hash': HexBytes(bytes([number]) * 32),
                                     'timestamp': 1700000000 + number, 'transactions': []}
        del w3.eth.blocks[99]
        trigger_config = TriggerConfig(EventType.NEW_BLOCK, include_block_details=True)

        state = PollCursorState(last_processed_block=97)
        records = await EthereumTrigger(trigger_config, connection).poll(state)
        assert [r['number'] for r in records] == [98, 100]
        assert state.last_processed_block == 100


class TestContractEvents:
    @pytest.mark.asyncio
    async def test_undecodable_logs_are_skipped(self, connection, w3):
        good = erc20_transfer(100, ALICE, BOB, 5)
        odd = erc721_transfer(100, ALICE, BOB, 9)
        odd['address'] = TOKEN.lower()
        w3.eth.logs = [good, odd]

        trigger_config = TriggerConfig(EventType.CONTRACT_EVENT, contract_address=TOKEN, abi=ERC20_ABI,
                                       event_name='Transfer')
        records = await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))

        assert len(records) == 1
        assert records[0]['eventName'] == 'Transfer'
        assert records[0]['args'] == {'from': ALICE, 'to': BOB, 'value': '5'}
        assert w3.eth.log_filters[0]['topics'] == [TRANSFER_TOPIC]

    @pytest.mark.asyncio
    async def test_missing_parameters(self, connection):
        with pytest.raises(ParameterError, match='contract_address'):
            await EthereumTrigger(TriggerConfig(EventType.CONTRACT_EVENT), connection).poll(PollCursorState(99))


class TestAddressActivity:
    @pytest.fixture
    def activity_block(self, w3):
        w3.eth.blocks[100] = {
            'number': 100,
            'timestamp': 1700001200,
            'transactions': [
                {'hash': HexBytes(b'\x01' * 32), 'from': ALICE, 'to': BOB, 'value': 10 ** 18},
                {'hash': HexBytes(b'\x02' * 32), 'from': BOB, 'to': ALICE, 'value': 10 ** 15},
                {'hash': HexBytes(b'\x03' * 32), 'from': HARDHAT_ADDRESS, 'to': BOB, 'value': 10 ** 18},
                {'hash': HexBytes(b'\x04' * 32), 'from': ALICE, 'to': None, 'value': 0},
            ],
        }

    async def poll(self, connection, **kwargs):
        trigger_config = TriggerConfig(EventType.ADDRESS_ACTIVITY, watch_address=ALICE.lower(), **kwargs)
        return await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))

    @pytest.mark.asyncio
    async def test_all_activity(self, connection, activity_block):
        records = await self.poll(connection)
        assert [r['type'] for r in records] == ['outgoing', 'incoming', 'outgoing']
        assert records[0]['value'] == '1.0'
        assert records[0]['timestamp'] == 1700001200
        assert records[2]['to'] is None

    @pytest.mark.asyncio
    async def test_incoming_only(self, connection, activity_block):
        records = await self.poll(connection, activity_type='incoming')
        assert [r['from'] for r in records] == [BOB]

    @pytest.mark.asyncio
    async def test_minimum_value(self, connection, activity_block):
        records = await self.poll(connection, min_value='0.01')
        assert [r['valueWei'] for r in records] == [str(10 ** 18)]


class TestTokenTransfers:
    @pytest.mark.asyncio
    async def test_either_direction(self, connection, w3):
        register_token(w3.eth)
        w3.eth.logs = [
            erc20_transfer(100, ALICE, BOB, 10 ** 18, 0),
            erc20_transfer(100, BOB, ALICE, 2 * 10 ** 18, 1),
            erc20_transfer(100, BOB, HARDHAT_ADDRESS, 3 * 10 ** 18, 2),
        ]
        trigger_config = TriggerConfig(EventType.TOKEN_TRANSFER, token_address=TOKEN, token_filter_type='either',
                                       token_filter_address=ALICE)
        records = await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))

        assert [(r['from'], r['to'], r['value']) for r in records] == [(ALICE, BOB, '1.0'), (BOB, ALICE, '2.0')]
        assert records[0]['token']['symbol'] == 'DAI'
        assert records[0]['valueRaw'] == str(10 ** 18)
        assert w3.eth.log_filters[0]['topics'] == [TRANSFER_TOPIC]

    @pytest.mark.asyncio
    async def test_from_filter_goes_into_topics(self, connection, w3):
        trigger_config = TriggerConfig(EventType.TOKEN_TRANSFER, token_address=TOKEN, token_filter_type='from',
                                       token_filter_address=ALICE)
        records = await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))
        assert records == []
        assert w3.eth.log_filters[0]['topics'] == [TRANSFER_TOPIC, address_topic(ALICE)]
        # no matches, no metadata lookups
        assert w3.eth.calls == []

    @pytest.mark.asyncio
    async def test_to_filter_leaves_from_open(self, connection, w3):
        trigger_config = TriggerConfig(EventType.TOKEN_TRANSFER, token_address=TOKEN, token_filter_type='to',
                                       token_filter_address=BOB)
        await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))
        assert w3.eth.log_filters[0]['topics'] == [TRANSFER_TOPIC, None, address_topic(BOB)]


class TestNftTransfers:
    @pytest.mark.asyncio
    async def test_erc20_logs_are_ignored(self, connection, w3):
        w3.eth.logs = [erc721_transfer(100, ALICE, BOB, 7), erc20_transfer(100, ALICE, BOB, 5)]
        trigger_config = TriggerConfig(EventType.NFT_TRANSFER, token_address=COLLECTION)
        records = await EthereumTrigger(trigger_config, connection).poll(PollCursorState(99))

        assert len(records) == 1
        assert records[0]['tokenId'] == '7'
        assert records[0]['contractAddress'] == COLLECTION
        assert records[0]['from'] == ALICE


class TestPollTrigger:
    @pytest.mark.asyncio
    async def test_cursor_is_persisted(self, connection):
        store = MemoryCursorStore({'t1': {'lastProcessedBlock': 97}})
        records = await poll_trigger({}, TriggerConfig(EventType.NEW_BLOCK), 't1', store, connection=connection)
        assert [r['blockNumber'] for r in records] == [98, 99, 100]
        assert store.data['t1'] == {'lastProcessedBlock': 100}

    @pytest.mark.asyncio
    async def test_failed_range_is_not_retried(self, connection, w3):
        w3.eth.fail_logs = aiohttp.ClientError('connection reset')
        store = MemoryCursorStore({'t1': {'lastProcessedBlock': 90}})
        trigger_config = TriggerConfig(EventType.TOKEN_TRANSFER, token_address=TOKEN)

        with pytest.raises(NetworkTransportError):
            await poll_trigger({}, trigger_config, 't1', store, connection=connection)
        assert store.data['t1'] == {'lastProcessedBlock': 100}

    @pytest.mark.asyncio
    async def test_owned_connection_is_closed(self, monkeypatch, connection):
        closed = []

        async def fake_close(handle):
            closed.append(handle)

        monkeypatch.setattr(trigger, 'create_connection', lambda credentials: connection)
        monkeypatch.setattr(trigger, 'close_connection', fake_close)

        await poll_trigger({}, TriggerConfig(EventType.NEW_BLOCK), 't1', MemoryCursorStore())
        assert closed == [connection]
