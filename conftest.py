"""
In-memory stand-ins for the web3 ``eth`` / ``ens`` namespaces used across the tests.

FakeEth subclasses web3's AsyncEth, so ``w3.eth.contract`` builds real web3
contract objects; only the methods that would reach a node are replaced.
"""
import pytest
from eth_abi import encode
from eth_abi.codec import ABICodec
from eth_account import Account
from eth_utils import encode_hex, event_abi_to_log_topic, filter_abi_by_type, function_abi_to_4byte_selector, keccak
from hexbytes import HexBytes
from web3._utils.abi import build_strict_registry
from web3.eth import AsyncEth
from web3.exceptions import BlockNotFound, TimeExhausted, TransactionNotFound

import abi_codec
from connection import ConnectionHandle, Signer
from networks import NETWORKS

HARDHAT_KEY = '0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80'
HARDHAT_ADDRESS = '0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266'

TOKEN = '0x6B175474E89094C44Da98b954EedeAC495271d0F'
ALICE = '0x70997970C51812dc3A010C7d01b50e0d17dc79C8'
BOB = '0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC'


def function_selector(abi, name) -> str:
    """0x-prefixed selector of a function given by name or full signature"""
    fn = abi_codec.find_function_abi(abi_codec.parse_abi(abi), name)
    return encode_hex(function_abi_to_4byte_selector(fn))


def event_topic(abi, name) -> str:
    event = next(e for e in filter_abi_by_type('event', abi) if e['name'] == name)
    return encode_hex(event_abi_to_log_topic(event))


async def _value(value):
    return value


class FakeEth(AsyncEth):
    def __init__(self, head=100, chain_id=1, gas_price=20 * 10 ** 9):
        # set by FakeWeb3; no request manager behind this module
        self.w3 = None
        self.head = head
        self.chain = chain_id
        self.price = gas_price
        self.syncing_status = False
        self.base_fee = 10 * 10 ** 9
        self.tip = 2 * 10 ** 9

        self.balances = {}
        self.nonces = {}
        self.code = {}
        self.blocks = {}
        self.transactions = {}
        self.receipts = {}
        self.logs = []
        self.call_results = {}

        self.calls = []
        self.estimates = []
        self.log_filters = []
        self.sent = []
        self.fail_logs = None
        # receipt recorded for every broadcast transaction, when set
        self.mine_receipt = None

    # awaitable properties, like AsyncEth
    @property
    def block_number(self):
        return _value(self.head)

    @property
    def chain_id(self):
        return _value(self.chain)

    @property
    def gas_price(self):
        return _value(self.price)

    @property
    def syncing(self):
        return _value(self.syncing_status)

    async def get_balance(self, address, block_identifier=None):
        return self.balances.get(address, 0)

    async def get_transaction_count(self, address, block_identifier=None):
        return self.nonces.get(address, 0)

    async def get_code(self, address, block_identifier=None):
        return HexBytes(self.code.get(address, b''))

    async def get_block(self, block_id, full_transactions=False):
        if block_id == 'latest':
            block_id = self.head
        if block_id not in self.blocks:
            raise BlockNotFound(f"Block {block_id} not found")
        return self.blocks[block_id]

    async def get_transaction(self, tx_hash):
        if tx_hash not in self.transactions:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return self.transactions[tx_hash]

    async def get_transaction_receipt(self, tx_hash):
        if tx_hash not in self.receipts:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return self.receipts[tx_hash]

    async def estimate_gas(self, tx, block_identifier=None, state_override=None):
        self.estimates.append(tx)
        data = tx.get('data')
        return 21000 if not data or data == '0x' else 60000

    async def fee_history(self, block_count, newest_block, reward_percentiles):
        return {
            'baseFeePerGas': [self.base_fee] * (block_count + 1),
            'reward': [[self.tip * (i + 1) for i in range(len(reward_percentiles))]] * block_count,
        }

    async def call(self, tx, block_identifier=None, state_override=None, ccip_read_enabled=None):
        self.calls.append(tx)
        key = (tx['to'].lower(), tx['data'][:10])
        result = self.call_results.get(key)
        if callable(result):
            result = result(tx)
        if isinstance(result, Exception):
            raise result
        return HexBytes(result or b'')

    async def get_logs(self, log_filter):
        self.log_filters.append(log_filter)
        if self.fail_logs is not None:
            raise self.fail_logs
        return [
            log for log in self.logs
            if log_filter['fromBlock'] <= log['blockNumber'] <= log_filter['toBlock']
        ]

    async def send_raw_transaction(self, raw):
        raw = bytes(HexBytes(raw))
        self.sent.append(raw)
        tx_hash = HexBytes(keccak(raw))
        if self.mine_receipt is not None:
            self.receipts[tx_hash.to_0x_hex()] = dict(self.mine_receipt, transactionHash=tx_hash)
        return tx_hash

    async def wait_for_transaction_receipt(self, tx_hash, timeout=120, poll_latency=0.1):
        if tx_hash not in self.receipts:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return self.receipts[tx_hash]

    def returns(self, address, abi, name, types, values):
        """Register the encoded return value of a view function"""
        self.call_results[(address.lower(), function_selector(abi, name))] = encode(types, values)


class FakeENS:
    def __init__(self, records=None, names=None, texts=None):
        self.records = records or {}
        self.names = names or {}
        self.texts = texts or {}
        self.lookups = []

    async def address(self, name):
        self.lookups.append(name)
        return self.records.get(name)

    async def name(self, address):
        return self.names.get(address)

    async def resolver(self, name):
        return object() if name in self.records or name in self.texts else None

    async def get_text(self, name, key):
        return self.texts.get(name, {}).get(key, '')


class FakeProvider:
    _is_batching = False

    def __init__(self):
        self.requests = []
        self.responses = {}
        self.disconnected = False

    async def make_request(self, method, params):
        self.requests.append((method, params))
        return self.responses.get(method, {'jsonrpc': '2.0', 'id': 1, 'result': None})

    async def disconnect(self):
        self.disconnected = True


class FakeWeb3:
    def __init__(self, eth=None, ens=None):
        self.codec = ABICodec(build_strict_registry())
        self.eth = eth or FakeEth()
        self.eth.w3 = self
        self.ens = ens or FakeENS()
        self.provider = FakeProvider()


def make_connection(w3=None, network_id='mainnet', private_key=None, explorer=None):
    w3 = w3 or FakeWeb3()
    network = NETWORKS[network_id]
    signer = Signer(Account.from_key(private_key), w3, network) if private_key else None
    extra = {'explorer': explorer} if explorer is not None else {}
    return ConnectionHandle(w3=w3, network=network, network_id=network_id, provider_name='public', signer=signer,
                            **extra)


@pytest.fixture
def w3():
    return FakeWeb3()


@pytest.fixture
def connection(w3):
    return make_connection(w3)


@pytest.fixture
def wallet_connection(w3):
    return make_connection(w3, private_key=HARDHAT_KEY)
