"""
Standard contract ABIs (ERC-20, ERC-721, ERC-1155)
"""


def _fn(name, inputs, outputs=None, mutability='view'):
    return {
        'type': 'function',
        'name': name,
        'inputs': [{'name': n, 'type': t} for n, t in inputs],
        'outputs': [{'name': n, 'type': t} for n, t in (outputs or [])],
        'stateMutability': mutability,
    }


def _event(name, inputs):
    return {
        'type': 'event',
        'name': name,
        'anonymous': False,
        'inputs': [{'name': n, 'type': t, 'indexed': indexed} for n, t, indexed in inputs],
    }


# 标准 ERC20 ABI
ERC20_ABI = [
    _fn('name', [], [('', 'string')]),
    _fn('symbol', [], [('', 'string')]),
    _fn('decimals', [], [('', 'uint8')]),
    _fn('totalSupply', [], [('', 'uint256')]),
    _fn('balanceOf', [('owner', 'address')], [('', 'uint256')]),
    _fn('transfer', [('to', 'address'), ('amount', 'uint256')], [('', 'bool')], 'nonpayable'),
    _fn('transferFrom', [('from', 'address'), ('to', 'address'), ('amount', 'uint256')], [('', 'bool')], 'nonpayable'),
    _fn('approve', [('spender', 'address'), ('amount', 'uint256')], [('', 'bool')], 'nonpayable'),
    _fn('allowance', [('owner', 'address'), ('spender', 'address')], [('', 'uint256')]),
    _event('Transfer', [('from', 'address', True), ('to', 'address', True), ('value', 'uint256', False)]),
    _event('Approval', [('owner', 'address', True), ('spender', 'address', True), ('value', 'uint256', False)]),
]

# 标准 ERC721 ABI
ERC721_ABI = [
    _fn('name', [], [('', 'string')]),
    _fn('symbol', [], [('', 'string')]),
    _fn('tokenURI', [('tokenId', 'uint256')], [('', 'string')]),
    _fn('balanceOf', [('owner', 'address')], [('', 'uint256')]),
    _fn('ownerOf', [('tokenId', 'uint256')], [('', 'address')]),
    _fn('safeTransferFrom', [('from', 'address'), ('to', 'address'), ('tokenId', 'uint256')], [], 'nonpayable'),
    _fn('safeTransferFrom', [('from', 'address'), ('to', 'address'), ('tokenId', 'uint256'), ('data', 'bytes')],
        [], 'nonpayable'),
    _fn('transferFrom', [('from', 'address'), ('to', 'address'), ('tokenId', 'uint256')], [], 'nonpayable'),
    _fn('approve', [('to', 'address'), ('tokenId', 'uint256')], [], 'nonpayable'),
    _fn('setApprovalForAll', [('operator', 'address'), ('approved', 'bool')], [], 'nonpayable'),
    _fn('getApproved', [('tokenId', 'uint256')], [('', 'address')]),
    _fn('isApprovedForAll', [('owner', 'address'), ('operator', 'address')], [('', 'bool')]),
    _event('Transfer', [('from', 'address', True), ('to', 'address', True), ('tokenId', 'uint256', True)]),
    _event('Approval', [('owner', 'address', True), ('approved', 'address', True), ('tokenId', 'uint256', True)]),
    _event('ApprovalForAll', [('owner', 'address', True), ('operator', 'address', True), ('approved', 'bool', False)]),
]

# ERC1155 (多代币) ABI
ERC1155_ABI = [
    _fn('uri', [('id', 'uint256')], [('', 'string')]),
    _fn('balanceOf', [('account', 'address'), ('id', 'uint256')], [('', 'uint256')]),
    _fn('balanceOfBatch', [('accounts', 'address[]'), ('ids', 'uint256[]')], [('', 'uint256[]')]),
    _fn('setApprovalForAll', [('operator', 'address'), ('approved', 'bool')], [], 'nonpayable'),
    _fn('isApprovedForAll', [('account', 'address'), ('operator', 'address')], [('', 'bool')]),
    _fn('safeTransferFrom', [('from', 'address'), ('to', 'address'), ('id', 'uint256'), ('amount', 'uint256'),
                             ('data', 'bytes')], [], 'nonpayable'),
    _fn('safeBatchTransferFrom', [('from', 'address'), ('to', 'address'), ('ids', 'uint256[]'),
                                  ('amounts', 'uint256[]'), ('data', 'bytes')], [], 'nonpayable'),
    _event('TransferSingle', [('operator', 'address', True), ('from', 'address', True), ('to', 'address', True),
                              ('id', 'uint256', False), ('value', 'uint256', False)]),
    _event('TransferBatch', [('operator', 'address', True), ('from', 'address', True), ('to', 'address', True),
                             ('ids', 'uint256[]', False), ('values', 'uint256[]', False)]),
    _event('ApprovalForAll', [('account', 'address', True), ('operator', 'address', True), ('approved', 'bool', False)]),
    _event('URI', [('value', 'string', False), ('id', 'uint256', True)]),
]
