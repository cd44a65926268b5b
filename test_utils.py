"""
Unit conversions, identifiers and record formatting
"""
import pytest
from hexbytes import HexBytes

from conftest import ALICE
from connection import FeeData
from errors import ParameterError
from networks import NETWORKS
from utils import (
    block_identifier,
    ether_to_wei,
    format_block,
    format_gas_estimate,
    format_receipt,
    format_transaction,
    format_units,
    is_valid_private_key,
    is_zero_address,
    parse_bool,
    parse_units,
    require_tx_hash,
    to_json_safe,
    wei_to_ether,
    wei_to_gwei,
)

TX_HASH = '0x' + 'ab' * 32


class TestUnits:
    def test_format_units(self):
        assert format_units(1500000, 6) == '1.5'
        assert format_units(0) == '0.0'
        assert format_units(10 ** 18) == '1.0'
        assert format_units(-5, 1) == '-0.5'
        assert format_units(42, 0) == '42.0'

    def test_parse_units(self):
        assert parse_units('1.5', 6) == 1500000
        assert parse_units('0.000000000000000001') == 1
        assert ether_to_wei('2') == 2 * 10 ** 18

    def test_parse_units_rejects_excess_precision(self):
        with pytest.raises(ParameterError):
            parse_units('1.0000001', 6)

    def test_parse_units_rejects_garbage(self):
        with pytest.raises(ParameterError):
            parse_units('one')
        with pytest.raises(ParameterError):
            parse_units('NaN')

    def test_wei_conversions(self):
        assert wei_to_ether(123456789000000000) == '0.123456789'
        assert wei_to_gwei(25 * 10 ** 9) == '25.0'


class TestParameterParsing:
    def test_bool_spellings(self):
        assert parse_bool(True) is True
        assert parse_bool('false') is False
        assert parse_bool('False') is False
        assert parse_bool('true') is True
        assert parse_bool('') is False

    def test_missing_uses_default(self):
        assert parse_bool(None, default=True) is True


class TestIdentifiers:
    def test_block_identifier(self):
        assert block_identifier(None) == 'latest'
        assert block_identifier('finalized') == 'finalized'
        assert block_identifier('123') == 123
        assert block_identifier('0x10') == 16
        assert block_identifier(TX_HASH) == TX_HASH

    def test_invalid_block_identifier(self):
        with pytest.raises(ParameterError):
            block_identifier('yesterday')

    def test_require_tx_hash(self):
        assert require_tx_hash(f" {TX_HASH} ") == TX_HASH
        with pytest.raises(ParameterError):
            require_tx_hash('0x1234')

    def test_private_key_shape(self):
        assert is_valid_private_key('11' * 32)
        assert not is_valid_private_key('0x' + '11' * 31)
        assert not is_valid_private_key('')

    def test_zero_address(self):
        assert is_zero_address('0x0000000000000000000000000000000000000000')
        assert is_zero_address(None)
        assert not is_zero_address(ALICE)


class TestFormatting:
    def test_transaction_with_receipt(self):
        tx = {'hash': HexBytes(TX_HASH), 'from': ALICE.lower(), 'to': None, 'value': 10 ** 17, 'gas': 21000,
              'nonce': 3, 'input': '0x', 'chainId': '0x1', 'maxFeePerGas': 30 * 10 ** 9}
        receipt = {'blockNumber': 10, 'blockHash': HexBytes('0x' + '01' * 32), 'status': 1, 'gasUsed': 21000}
        result = format_transaction(tx, receipt, NETWORKS['sepolia'])

        assert result['hash'] == TX_HASH
        assert result['from'] == ALICE
        assert result['to'] is None
        assert result['value'] == '0.1'
        assert result['chainId'] == 1
        assert result['maxFeePerGas'] == '30.0'
        assert result['status'] == 1
        assert result['gasUsed'] == '21000'
        assert result['explorerUrl'] == f"https://sepolia.etherscan.io/tx/{TX_HASH}"

    def test_receipt_without_status(self):
        result = format_receipt({'transactionHash': HexBytes(TX_HASH), 'logs': [{}, {}]})
        assert result['status'] == -1
        assert result['logs'] == 2
        assert result['contractAddress'] is None

    def test_block_with_transaction_hashes(self):
        block = {'number': 5, 'hash': HexBytes('0x' + '02' * 32), 'timestamp': 1700000000,
                 'transactions': [HexBytes(TX_HASH)], 'baseFeePerGas': 7 * 10 ** 9, 'miner': ALICE.lower()}
        result = format_block(block, include_transactions=True)
        assert result['transactionCount'] == 1
        assert result['transactions'] == [TX_HASH]
        assert result['baseFeePerGas'] == '7.0'
        assert result['miner'] == ALICE

    def test_gas_estimate_uses_max_fee(self):
        fee_data = FeeData(gas_price=20 * 10 ** 9, max_fee_per_gas=30 * 10 ** 9, max_priority_fee_per_gas=10 ** 9)
        result = format_gas_estimate(21000, fee_data)
        assert result['estimatedCostWei'] == str(21000 * 30 * 10 ** 9)
        assert result['estimatedCostEth'] == '0.00063'
        assert result['maxPriorityFeePerGas'] == '1.0'

    def test_json_safe(self):
        value = {'n': 2 ** 200, 'b': HexBytes('0x01'), 'l': [1, True, None]}
        assert to_json_safe(value) == {'n': str(2 ** 200), 'b': '0x01', 'l': ['1', True, None]}
