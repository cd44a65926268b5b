"""
Account operations, including explorer-backed history
"""
import pytest
from hexbytes import HexBytes

import account_ops
from abis import ERC20_ABI
from conftest import ALICE, BOB, HARDHAT_ADDRESS, TOKEN, make_connection
from errors import ParameterError, ReadOnlyConnectionError


class FakeExplorer:
    def __init__(self, items):
        self.items = items
        self.calls = []

    async def get_transactions(self, chain_id, address, **kwargs):
        self.calls.append(('txlist', chain_id, address, kwargs))
        return self.items

    async def get_token_transfers(self, chain_id, address, contract_address=None, **kwargs):
        self.calls.append(('tokentx', chain_id, address, dict(kwargs, contract_address=contract_address)))
        return self.items

    async def get_internal_transactions(self, chain_id, address, **kwargs):
        self.calls.append(('txlistinternal', chain_id, address, kwargs))
        return self.items


class TestState:
    @pytest.mark.asyncio
    async def test_balance(self, connection, w3):
        w3.eth.balances[ALICE] = 1234 * 10 ** 15
        result = await account_ops.get_balance(connection, ALICE.lower())
        assert result == {'address': ALICE, 'balanceWei': str(1234 * 10 ** 15), 'balanceEth': '1.234'}

    @pytest.mark.asyncio
    async def test_nonce(self, connection, w3):
        w3.eth.nonces[ALICE] = 7
        assert (await account_ops.get_nonce(connection, ALICE, 'pending'))['nonce'] == 7

    @pytest.mark.asyncio
    async def test_nonce_rejects_other_tags(self, connection):
        with pytest.raises(ParameterError):
            await account_ops.get_nonce(connection, ALICE, 'finalized')

    @pytest.mark.asyncio
    async def test_code(self, connection, w3):
        w3.eth.code[TOKEN] = HexBytes('0x6080')
        contract = await account_ops.get_code(connection, TOKEN)
        eoa = await account_ops.get_code(connection, ALICE)
        assert contract['isContract'] is True
        assert contract['code'] == '0x6080'
        assert eoa['isContract'] is False

    @pytest.mark.asyncio
    async def test_wallet_info_requires_wallet(self, connection):
        with pytest.raises(ReadOnlyConnectionError):
            await account_ops.get_wallet_info(connection)

    @pytest.mark.asyncio
    async def test_wallet_info(self, wallet_connection, w3):
        w3.eth.balances[HARDHAT_ADDRESS] = 10 ** 18
        result = await account_ops.get_wallet_info(wallet_connection)
        assert result['address'] == HARDHAT_ADDRESS
        assert result['balanceEth'] == '1.0'
        assert result['network'] == 'Ethereum Mainnet'


class TestTokenBalances:
    @pytest.mark.asyncio
    async def test_failing_tokens_are_left_out(self, connection, w3):
        w3.eth.returns(TOKEN, ERC20_ABI, 'name', ['string'], ['Dai'])
        w3.eth.returns(TOKEN, ERC20_ABI, 'symbol', ['string'], ['DAI'])
        w3.eth.returns(TOKEN, ERC20_ABI, 'decimals', ['uint8'], [18])
        w3.eth.returns(TOKEN, ERC20_ABI, 'balanceOf', ['uint256'], [5 * 10 ** 18])

        balances = await account_ops.get_multiple_token_balances(connection, [TOKEN, BOB], ALICE)
        assert len(balances) == 1
        assert balances[0]['balance'] == '5.0'
        assert balances[0]['token']['symbol'] == 'DAI'


class TestHistory:
    @pytest.mark.asyncio
    async def test_transaction_history(self, w3):
        explorer = FakeExplorer([{
            'hash': '0xabc', 'from': ALICE.lower(), 'to': '', 'value': '1000000000000000000',
            'blockNumber': '12', 'timeStamp': '1700000000', 'gasUsed': '21000', 'isError': '1',
            'contractAddress': BOB.lower(),
        }])
        connection = make_connection(w3, explorer=explorer)
        history = await account_ops.get_transaction_history(connection, ALICE, page=2, limit=10, sort='asc')
        assert history == [{
            'hash': '0xabc',
            'from': ALICE,
            'to': None,
            'value': '1.0',
            'valueWei': '1000000000000000000',
            'blockNumber': 12,
            'timestamp': 1700000000,
            'gasUsed': '21000',
            'isError': True,
            'contractAddress': BOB,
        }]
        assert explorer.calls == [('txlist', 1, ALICE, {'page': 2, 'offset': 10, 'sort': 'asc'})]

    @pytest.mark.asyncio
    async def test_token_transfers(self, w3):
        explorer = FakeExplorer([{
            'hash': '0xdef', 'from': ALICE.lower(), 'to': BOB.lower(), 'contractAddress': TOKEN.lower(),
            'tokenName': 'Dai', 'tokenSymbol': 'DAI', 'tokenDecimal': '18', 'value': '2500000000000000000',
            'blockNumber': '20', 'timeStamp': '1700000100',
        }])
        connection = make_connection(w3, explorer=explorer)
        transfers = await account_ops.get_token_transfers(connection, ALICE, token_address=TOKEN.lower())
        assert transfers[0]['value'] == '2.5'
        assert transfers[0]['token']['address'] == TOKEN
        assert explorer.calls[0][3]['contract_address'] == TOKEN

    @pytest.mark.asyncio
    async def test_internal_transactions(self, w3):
        explorer = FakeExplorer([])
        connection = make_connection(w3, explorer=explorer)
        assert await account_ops.get_internal_transactions(connection, ALICE) == []
        assert explorer.calls[0][0] == 'txlistinternal'
