"""
ABI helpers around web3's contract API: JSON argument coercion, function and
event lookup by name or signature, and log filter topics
"""
import json
import re
from typing import Dict, List, Optional, Union

from eth_abi.exceptions import DecodingError
from eth_utils import (
    abi_to_signature,
    encode_hex,
    event_abi_to_log_topic,
    filter_abi_by_type,
    is_address,
    keccak,
    to_checksum_address,
)
from hexbytes import HexBytes
from web3.exceptions import InvalidEventABI, LogTopicError, MismatchedABI

from errors import ParameterError
from utils import parse_bool

_ARRAY_SUFFIX = re.compile(r'(\[\d*\])$')

# raised by process_log for logs that do not fit an event's layout
LOG_DECODE_ERRORS = (MismatchedABI, LogTopicError, InvalidEventABI, DecodingError)

_LOG_DEFAULTS = {
    'address': None,
    'blockHash': None,
    'blockNumber': None,
    'logIndex': None,
    'transactionHash': None,
    'transactionIndex': None,
    'data': '0x',
}


def parse_abi(abi: Union[str, List[Dict], Dict]) -> List[Dict]:
    """Accept an ABI as a JSON string or an already parsed list"""
    if isinstance(abi, str):
        try:
            abi = json.loads(abi)
        except json.JSONDecodeError as e:
            raise ParameterError(f"ABI is not valid JSON: {e}") from e
    if isinstance(abi, dict):
        # compiler artifacts wrap the ABI
        abi = abi.get('abi', [abi])
    if not isinstance(abi, list):
        raise ParameterError("ABI must be a JSON array")
    # every event definition carries an anonymous flag
    return [dict(item, anonymous=False) if item.get('type') == 'event' and 'anonymous' not in item else item
            for item in abi]


def contract_for(w3, abi, address: Optional[str] = None, bytecode: Optional[str] = None):
    """
    web3 contract for an ABI in any accepted form. Without an address the
    contract factory is returned, which is enough for encoding and decoding.
    """
    kwargs = {'abi': parse_abi(abi)}
    if bytecode:
        kwargs['bytecode'] = bytecode
    if address:
        return w3.eth.contract(address=address, **kwargs)
    return w3.eth.contract(**kwargs)


def _matching(abi: List[Dict], kind: str, name: str) -> List[Dict]:
    items = filter_abi_by_type(kind, abi)
    if '(' in name:
        compact = name.replace(' ', '')
        return [item for item in items if abi_to_signature(item) == compact]
    return [item for item in items if item.get('name') == name]


def find_function_abi(abi: List[Dict], name: str) -> Dict:
    """Function definition by name or full signature ("transfer(address,uint256)")"""
    matches = _matching(abi, 'function', name)
    if not matches:
        raise ParameterError(f"Function {name} not found in ABI")
    if len(matches) > 1:
        options = ', '.join(abi_to_signature(f) for f in matches)
        raise ParameterError(f"Function {name} is overloaded, use a full signature: {options}")
    return matches[0]


def _split_array(type_str: str):
    match = _ARRAY_SUFFIX.search(type_str)
    if not match:
        return None
    return type_str[:match.start()]


def coerce_value(param: Dict, value):
    """Convert JSON-friendly input (numeric strings, hex strings) into what the ABI codec expects"""
    type_str = param['type']
    element_type = _split_array(type_str)
    if element_type is not None:
        if isinstance(value, str):
            value = json.loads(value)
        element = dict(param, type=element_type)
        return [coerce_value(element, v) for v in value]

    if type_str == 'tuple':
        components = param.get('components', [])
        if isinstance(value, dict):
            value = [value[c['name']] for c in components]
        return tuple(coerce_value(c, v) for c, v in zip(components, value))

    if type_str.startswith(('uint', 'int')):
        if isinstance(value, str):
            value = value.strip()
            return int(value, 16) if value.lower().startswith('0x') else int(value)
        return int(value)

    if type_str == 'bool':
        return parse_bool(value)

    if type_str == 'address':
        if not is_address(value):
            raise ParameterError(f"Invalid address argument: {value}")
        return to_checksum_address(value)

    if type_str.startswith('bytes'):
        if isinstance(value, str):
            return bytes(HexBytes(value))
        return bytes(value)

    return value


def coerce_args(inputs: List[Dict], args: list) -> list:
    if len(inputs) != len(args):
        raise ParameterError(f"Expected {len(inputs)} arguments, got {len(args)}")
    try:
        return [coerce_value(p, a) for p, a in zip(inputs, args)]
    except (ValueError, TypeError, KeyError) as e:
        raise ParameterError(f"Invalid argument: {e}") from e


def bind_function(contract, name: str, args: Optional[list] = None):
    """
    Contract function bound to its arguments.

    A full signature or a name with a single definition coerces the arguments to
    that definition's input types. For an overloaded name web3 picks the
    definition the arguments encode to, as given.
    """
    args = list(args or [])
    matches = _matching(contract.abi, 'function', name)
    if not matches:
        raise ParameterError(f"Function {name} not found in ABI")
    if len(matches) > 1:
        fn_abi = contract.functions[name](*args).abi
    else:
        fn_abi = matches[0]
    return contract.functions[abi_to_signature(fn_abi)](*coerce_args(fn_abi.get('inputs', []), args))


def normalize_value(param: Dict, value):
    """Checksum decoded addresses and name decoded tuple fields"""
    type_str = param['type']
    element_type = _split_array(type_str)
    if element_type is not None:
        element = dict(param, type=element_type)
        return [normalize_value(element, v) for v in value]
    if type_str == 'tuple':
        return {
            (c.get('name') or f"arg{i}"): normalize_value(c, v)
            for i, (c, v) in enumerate(zip(param.get('components', []), value))
        }
    if type_str == 'address':
        return to_checksum_address(value)
    return value


# --- Events ---

def find_event(contract, name: str):
    """Contract event by name or full signature"""
    matches = _matching(contract.abi, 'event', name)
    if not matches:
        raise ParameterError(f"Event {name} not found in ABI")
    return contract.events[abi_to_signature(matches[0])]()


def _indexed_topic(codec, param: Dict, value) -> Optional[str]:
    if value is None:
        return None
    type_str = param['type']
    if type_str == 'string':
        # dynamic indexed values are stored as their hash
        return encode_hex(keccak(text=value))
    if type_str == 'bytes':
        return encode_hex(keccak(bytes(HexBytes(value))))
    if type_str.startswith('tuple') or _split_array(type_str) is not None:
        raise ParameterError(f"Cannot filter on indexed {type_str} parameter {param.get('name')}")
    return encode_hex(codec.encode([type_str], [coerce_value(param, value)]))


def event_topics(event, args: Optional[list] = None) -> List[Optional[str]]:
    """topic0 followed by one topic per supplied indexed argument; None leaves a slot open"""
    indexed = [p for p in event.abi.get('inputs', []) if p.get('indexed')]
    args = list(args or [])
    if len(args) > len(indexed):
        raise ParameterError(f"Event {event.abi['name']} has only {len(indexed)} indexed parameters")

    topics = [encode_hex(event_abi_to_log_topic(event.abi))]
    for param, value in zip(indexed, args):
        topics.append(_indexed_topic(event.w3.codec, param, value))
    while topics and topics[-1] is None:
        topics.pop()
    return topics


def log_entry(log) -> Dict:
    """A log with the receipt fields web3's decoder reads, for logs given as topics and data only"""
    return {**_LOG_DEFAULTS, **log}


def decode_log(event, log) -> Dict:
    """Decoded arguments of one log; raises LOG_DECODE_ERRORS when the log does not fit the event"""
    return dict(event.process_log(log_entry(log))['args'])


def find_events_by_topic(w3, abi, topic) -> list:
    """
    Non-anonymous events whose signature hashes to ``topic``, each bound to its
    own definition: ERC-20 and ERC-721 Transfer share a signature.
    """
    topic0 = encode_hex(HexBytes(topic))
    events = []
    for item in filter_abi_by_type('event', parse_abi(abi)):
        if item.get('anonymous'):
            continue
        if encode_hex(event_abi_to_log_topic(item)) == topic0:
            events.append(find_event(contract_for(w3, [item]), abi_to_signature(item)))
    return events
