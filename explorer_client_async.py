"""
Async Etherscan-style block explorer client (v2 multichain API)
"""
import aiohttp
import asyncio
import json
import logging
import time
from typing import Dict, List, Optional

import config
from errors import ExplorerError, MissingApiKeyError, NetworkTransportError

logger = logging.getLogger(__name__)

# status "0" answers that only mean "nothing matched"
EMPTY_RESULT_MESSAGES = ('No transactions found', 'No records found', 'No token transfers found')


class ExplorerClientAsync:
    def __init__(self, api_key: str = None, api_url: str = None):
        self.api_key = api_key if api_key is not None else config.EXPLORER_API_KEY
        self.api_url = api_url or config.EXPLORER_API_URL

        # Rate limiting
        self.last_request_time = 0
        self.min_request_interval = config.EXPLORER_MIN_REQUEST_INTERVAL
        self.rate_limit_lock = asyncio.Lock()

        # 缓存合约 ABI 查询结果
        self._abi_cache = {}
        self._cache_ttl = 3600

    async def _create_session(self):
        """Create a new aiohttp session per call"""
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT))

    async def _rate_limit(self):
        """Enforce rate limiting"""
        async with self.rate_limit_lock:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.min_request_interval:
                await asyncio.sleep(self.min_request_interval - elapsed)
            self.last_request_time = time.time()

    @staticmethod
    def _parse_envelope(payload: Dict):
        """Unwrap {status, message, result}; status "1" is success"""
        if not isinstance(payload, dict) or 'status' not in payload:
            raise ExplorerError('Unexpected response shape', payload)

        status = str(payload.get('status'))
        message = payload.get('message') or ''
        result = payload.get('result')

        if status == '1':
            return result
        if status == '0' and any(message.startswith(m) for m in EMPTY_RESULT_MESSAGES):
            return []
        raise ExplorerError(message or 'Request failed', result)

    async def _request(self, chain_id: int, params: Dict):
        if not self.api_key:
            raise MissingApiKeyError('block explorer')

        await self._rate_limit()

        query = {'chainid': chain_id, **{k: v for k, v in params.items() if v is not None}, 'apikey': self.api_key}
        label = f"{params.get('module')}/{params.get('action')}"

        session = await self._create_session()
        try:
            async with session.get(self.api_url, params=query) as response:
                if response.status != 200:
                    raise NetworkTransportError(f"Explorer API returned HTTP {response.status} for {label}")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkTransportError(f"Timeout querying explorer API for {label}") from e
        except aiohttp.ClientError as e:
            raise NetworkTransportError(f"Error querying explorer API for {label}: {e}") from e
        finally:
            await session.close()

        result = self._parse_envelope(payload)
        logger.debug(f"[{chain_id}] Explorer {label} returned {len(result) if isinstance(result, list) else 1} item(s)")
        return result

    async def _account_list(self, action: str, chain_id: int, address: str, page: int, offset: int,
                            sort: str, start_block: int, end_block: Optional[int], **extra) -> List[Dict]:
        return await self._request(chain_id, {
            'module': 'account',
            'action': action,
            'address': address,
            'startblock': start_block,
            'endblock': end_block if end_block is not None else 99999999,
            'page': page,
            'offset': offset,
            'sort': sort,
            **extra,
        })

    async def get_transactions(self, chain_id: int, address: str, page: int = 1, offset: int = 100,
                               sort: str = 'desc', start_block: int = 0, end_block: int = None) -> List[Dict]:
        """Normal transactions sent from or to an address"""
        return await self._account_list('txlist', chain_id, address, page, offset, sort, start_block, end_block)

    async def get_token_transfers(self, chain_id: int, address: str, contract_address: str = None,
                                  page: int = 1, offset: int = 100, sort: str = 'desc',
                                  start_block: int = 0, end_block: int = None) -> List[Dict]:
        """ERC-20 transfer events involving an address, optionally for one token"""
        return await self._account_list('tokentx', chain_id, address, page, offset, sort, start_block, end_block,
                                        contractaddress=contract_address)

    async def get_internal_transactions(self, chain_id: int, address: str, page: int = 1, offset: int = 100,
                                        sort: str = 'desc', start_block: int = 0, end_block: int = None) -> List[Dict]:
        return await self._account_list('txlistinternal', chain_id, address, page, offset, sort,
                                        start_block, end_block)

    async def get_contract_abi(self, chain_id: int, address: str) -> List[Dict]:
        """Verified contract ABI, cached for an hour"""
        cache_key = f"{chain_id}:{address.lower()}"
        cached = self._abi_cache.get(cache_key)
        if cached and time.time() - cached[1] < self._cache_ttl:
            logger.debug(f"[{chain_id}] ABI cache hit for {address[:10]}...")
            return cached[0]

        result = await self._request(chain_id, {'module': 'contract', 'action': 'getabi', 'address': address})
        try:
            abi = json.loads(result)
        except (TypeError, json.JSONDecodeError) as e:
            raise ExplorerError('Contract ABI is not valid JSON', result) from e

        self._abi_cache[cache_key] = (abi, time.time())
        return abi

    def clear_cache(self):
        self._abi_cache.clear()
        logger.info("Explorer ABI cache cleared")
