"""
Error taxonomy for the Ethereum workflow connector
"""
import asyncio
from contextlib import asynccontextmanager, contextmanager
from typing import Optional

import aiohttp
from eth_abi.exceptions import DecodingError
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    MismatchedABI,
    TimeExhausted,
    Web3AttributeError,
    Web3RPCError,
    Web3TypeError,
    Web3ValidationError,
    Web3ValueError,
)


class EthereumConnectorError(Exception):
    """Base class for every error raised by the connector"""


# --- Credential / configuration errors (not retryable) ---

class ConfigurationError(EthereumConnectorError):
    pass


class UnknownNetworkError(ConfigurationError):
    def __init__(self, network: str):
        super().__init__(f"Unknown network: {network}")
        self.network = network


class UnsupportedProviderError(ConfigurationError):
    def __init__(self, provider: str, network: str):
        super().__init__(f"Provider {provider} not available for network: {network}")
        self.provider = provider
        self.network = network


class NoPublicEndpointError(ConfigurationError):
    def __init__(self, network: str):
        super().__init__(f"No public RPC available for network: {network}")
        self.network = network


class MissingApiKeyError(ConfigurationError):
    def __init__(self, provider: str):
        super().__init__(f"API key is required for {provider} provider")
        self.provider = provider


class MissingSecretError(ConfigurationError):
    pass


class InvalidSecretError(ConfigurationError):
    pass


class ReadOnlyConnectionError(ConfigurationError):
    def __init__(self, action: str):
        super().__init__(
            f"Wallet required to {action}. Set up a private key or mnemonic in credentials."
        )
        self.action = action


class ParameterError(ConfigurationError):
    pass


# --- Per-record input errors ---

class InvalidAddressError(EthereumConnectorError):
    def __init__(self, value: str):
        super().__init__(f"Invalid address or ENS name: {value}")
        self.value = value


class UnresolvableNameError(EthereumConnectorError):
    def __init__(self, name: str):
        super().__init__(f"Could not resolve ENS name: {name}")
        self.name = name


# --- Remote errors ---

class RpcError(EthereumConnectorError):
    """The node answered with a JSON-RPC error object"""

    def __init__(self, message: str, code: Optional[int] = None, data=None):
        super().__init__(message if code is None else f"RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message
        self.data = data

    @classmethod
    def from_response(cls, error: dict) -> 'RpcError':
        return cls(error.get('message', 'Unknown RPC error'), error.get('code'), error.get('data'))

    @classmethod
    def from_web3(cls, exc: Web3RPCError) -> 'RpcError':
        response = getattr(exc, 'rpc_response', None) or {}
        error = response.get('error') if isinstance(response, dict) else None
        if isinstance(error, dict):
            return cls.from_response(error)
        return cls(str(exc))


class DecodeError(EthereumConnectorError):
    """Returned data or a log could not be decoded against the ABI"""


class WaitTimeoutError(EthereumConnectorError, TimeoutError):
    pass


class NetworkTransportError(EthereumConnectorError):
    pass


class ExplorerError(EthereumConnectorError):
    """The block explorer answered with status != "1" """

    def __init__(self, message: str, result=None):
        super().__init__(f"Explorer API error: {message}" + (f" ({result})" if isinstance(result, str) else ''))
        self.explorer_message = message
        self.result = result


@asynccontextmanager
async def rpc_errors():
    """Translate web3 and transport exceptions into connector errors"""
    try:
        yield
    except EthereumConnectorError:
        raise
    except ContractLogicError as e:
        raise RpcError(f"Execution reverted: {getattr(e, 'message', None) or e}", data=getattr(e, 'data', None)) from e
    except Web3RPCError as e:
        raise RpcError.from_web3(e) from e
    except BadFunctionCallOutput as e:
        raise DecodeError(str(e)) from e
    except TimeExhausted as e:
        raise WaitTimeoutError(str(e)) from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise NetworkTransportError(f"Failed to reach RPC endpoint: {e}") from e


@contextmanager
def abi_errors():
    """Translate web3 contract lookup, encoding and decoding failures into connector errors"""
    try:
        yield
    except EthereumConnectorError:
        raise
    except (BadFunctionCallOutput, DecodingError) as e:
        raise DecodeError(f"Could not decode data: {e}") from e
    except (MismatchedABI, Web3AttributeError, Web3ValidationError, Web3TypeError, Web3ValueError) as e:
        raise ParameterError(str(e)) from e
