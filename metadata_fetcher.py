"""
Best-effort NFT metadata retrieval (HTTP, IPFS, Arweave and inline data URIs)
"""
import aiohttp
import asyncio
import base64
import json
import logging
from typing import Dict, Optional
from urllib.parse import unquote

import config

logger = logging.getLogger(__name__)


def resolve_metadata_uri(uri: str) -> str:
    """Rewrite decentralized storage URIs to their HTTP gateways"""
    if uri.startswith('ipfs://'):
        path = uri[len('ipfs://'):]
        if path.startswith('ipfs/'):
            path = path[len('ipfs/'):]
        return config.IPFS_GATEWAY + path
    if uri.startswith('ar://'):
        return config.ARWEAVE_GATEWAY + uri[len('ar://'):]
    return uri


def decode_data_uri(uri: str) -> Optional[Dict]:
    """Decode a data:application/json URI (base64 or percent-encoded)"""
    if not uri.startswith('data:application/json'):
        return None
    header, _, body = uri.partition(',')
    if header.endswith(';base64'):
        text = base64.b64decode(body).decode('utf-8')
    else:
        text = unquote(body)
    return json.loads(text)


def normalize_metadata(metadata: Dict) -> Dict:
    result = {
        'name': metadata.get('name'),
        'description': metadata.get('description'),
        'image': metadata.get('image') or metadata.get('image_url'),
        'externalUrl': metadata.get('external_url'),
    }
    attributes = metadata.get('attributes')
    if isinstance(attributes, list):
        result['attributes'] = [
            {
                'traitType': attr.get('trait_type', ''),
                'value': attr.get('value'),
                'displayType': attr.get('display_type'),
            }
            for attr in attributes if isinstance(attr, dict)
        ]
    return {k: v for k, v in result.items() if v is not None}


async def fetch_metadata(uri: str) -> Optional[Dict]:
    """
    Fetch and normalize token metadata.

    Any failure (bad URI, HTTP error, invalid JSON, timeout) yields None; callers
    return the token record without metadata.
    """
    if not uri:
        return None
    try:
        inline = decode_data_uri(uri)
        if inline is not None:
            return normalize_metadata(inline)

        url = resolve_metadata_uri(uri)
        timeout = aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers={'Accept': 'application/json'}) as response:
                if response.status != 200:
                    logger.debug(f"Metadata request to {url[:60]} returned status {response.status}")
                    return None
                data = await response.json(content_type=None)
        if not isinstance(data, dict):
            return None
        return normalize_metadata(data)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, UnicodeDecodeError) as e:
        logger.debug(f"Could not fetch metadata from {uri[:60]}: {e}")
        return None
