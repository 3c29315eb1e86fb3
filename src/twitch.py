"""
Twitch Source Resolution

Resolves a live Twitch channel into a single playable HLS variant URL using
the web player's two-step protocol: a GraphQL playback access token
exchange, then an usher master playlist fetch signed with that token.
"""

import m3u8
import httpx
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode

from config import settings
from errors import StreamNotLiveError, UpstreamProtocolError
from models import Quality

logger = logging.getLogger(__name__)

# Pinned persisted-query hash of the PlaybackAccessToken operation
PLAYBACK_ACCESS_TOKEN_HASH = "0828119ded1c134779664348596871485c815d28a38bc838173689910bf7aa36"

PLAYBACK_ACCESS_TOKEN_QUERY = """query PlaybackAccessToken($login: String!, $playerType: String!) {
  streamPlaybackAccessToken(channelName: $login, params: {platform: "web", playerBackend: "mediaplayer", playerType: $playerType}) {
    value
    signature
    __typename
  }
}"""

# Named VIDEO tag and the equivalent RESOLUTION for each specific quality
QUALITY_TAGS: Dict[Quality, Tuple[str, Optional[Tuple[int, int]]]] = {
    Quality.P720_60: ("720p60", None),
    Quality.P720: ("720p", (1280, 720)),
    Quality.P480: ("480p", (854, 480)),
    Quality.P360: ("360p", (640, 360)),
    Quality.P160: ("160p", (284, 160)),
}

# Tried in order for AUTO, or when a requested quality is missing
AUTO_CASCADE = (Quality.P720_60, Quality.P720, Quality.P480)


@dataclass
class PlaybackAccessToken:
    value: str
    signature: str


def _variant_uri(variant) -> str:
    return variant.absolute_uri if variant.base_uri else variant.uri


def find_quality(variants: List, quality: Quality) -> Optional[str]:
    """Find the variant URL for a specific quality by named tag, then by resolution."""
    tag, resolution = QUALITY_TAGS[quality]

    for variant in variants:
        if variant.stream_info.video == tag:
            return _variant_uri(variant)

    if resolution is not None:
        for variant in variants:
            if variant.stream_info.resolution == resolution:
                return _variant_uri(variant)

    return None


def select_variant(content: str, quality: Quality, manifest_url: str) -> str:
    """
    Pick the variant URL matching `quality` from a master playlist.

    SOURCE takes the first variant. A specific quality that is not present
    falls through to the AUTO cascade, which ends at the first variant. If
    the manifest lists no variants at all, the manifest URL itself is
    returned so the caller can hand it to ffmpeg directly.
    """
    try:
        playlist = m3u8.loads(content, uri=manifest_url)
        variants = [v for v in playlist.playlists if v.uri]
    except (ValueError, KeyError, IndexError) as e:
        logger.error(f"Error parsing M3U8 manifest: {e}")
        raise UpstreamProtocolError("Twitch manifest could not be parsed") from e

    # A media playlist has segment URIs but no variants. ffmpeg is given the
    # playlist itself so it keeps following it, not a single segment.
    if not variants:
        logger.warning("Manifest lists no variants, using the manifest URL directly")
        return manifest_url

    first = _variant_uri(variants[0])

    if quality == Quality.SOURCE:
        return first

    if quality in QUALITY_TAGS:
        url = find_quality(variants, quality)
        if url:
            return url
        logger.info(f"Quality {quality.value} not offered, falling back to auto")

    for candidate in AUTO_CASCADE:
        url = find_quality(variants, candidate)
        if url:
            logger.debug(f"Auto quality selected {candidate.value}")
            return url

    return first


class TwitchResolver:
    """Resolves Twitch channels into playable HLS variant URLs."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None):
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.RESOLVER_TIMEOUT,
            follow_redirects=True,
        )

    async def close(self):
        await self.http_client.aclose()

    async def resolve(self, channel: str, quality: Quality = Quality.AUTO) -> str:
        """
        Resolve `channel` to a playable URL.

        Raises:
            UpstreamProtocolError: token exchange failed or was malformed,
                or Twitch was unreachable.
            StreamNotLiveError: the manifest fetch was refused, which
                usually means the channel is offline.
        """
        logger.info(f"Fetching stream for: {channel} (Quality: {quality.value})")

        token = await self._fetch_access_token(channel)
        logger.info("Got access token. Fetching M3U8...")

        manifest_url = self.build_manifest_url(channel, token)
        content = await self._fetch_manifest(channel, manifest_url)

        return select_variant(content, quality, manifest_url)

    def build_manifest_url(self, channel: str, token: PlaybackAccessToken) -> str:
        params = {
            "allow_source": "true",
            "allow_audio_only": "true",
            "allow_spectre": "true",
            "player": "twitchweb",
            "playlist_include_framerate": "true",
            "segment_preference": "4",
            "sig": token.signature,
            "token": token.value,
        }
        return f"{settings.TWITCH_USHER_URL.rstrip('/')}/{channel}.m3u8?{urlencode(params)}"

    async def _fetch_access_token(self, channel: str) -> PlaybackAccessToken:
        payload = {
            "operationName": "PlaybackAccessToken",
            "variables": {
                "login": channel,
                "playerType": "embed",
            },
            "extensions": {
                "persistedQuery": {
                    "version": 1,
                    "sha256Hash": PLAYBACK_ACCESS_TOKEN_HASH,
                }
            },
            "query": PLAYBACK_ACCESS_TOKEN_QUERY,
        }
        headers = {
            "Client-Id": settings.TWITCH_CLIENT_ID,
            "Content-Type": "application/json",
        }

        try:
            response = await self.http_client.post(
                settings.TWITCH_GQL_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Token request to Twitch failed: {e}")
            raise UpstreamProtocolError(f"Twitch token request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Failed to fetch token. Status: {response.status_code} Response: {response.text[:500]}")
            raise UpstreamProtocolError(
                f"Twitch token exchange returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Token response is not JSON: {response.text[:500]}")
            raise UpstreamProtocolError("Twitch token response is not JSON") from e

        if not isinstance(data, dict):
            raise UpstreamProtocolError("Unexpected Twitch token response shape")

        if data.get("errors"):
            logger.error(f"GQL Errors: {data['errors']}")
            raise UpstreamProtocolError("Twitch token exchange returned errors")

        access_token = (data.get("data") or {}).get("streamPlaybackAccessToken")
        if not access_token or not access_token.get("value") or not access_token.get("signature"):
            logger.error(f"No access token found in response for {channel}")
            raise UpstreamProtocolError(f"No playback access token for {channel}")

        return PlaybackAccessToken(
            value=access_token["value"],
            signature=access_token["signature"],
        )

    async def _fetch_manifest(self, channel: str, manifest_url: str) -> str:
        try:
            response = await self.http_client.get(manifest_url)
        except httpx.HTTPError as e:
            logger.error(f"Manifest request to Twitch failed: {e}")
            raise UpstreamProtocolError(f"Twitch manifest request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Failed to fetch m3u8 for {channel}. Status: {response.status_code}")
            raise StreamNotLiveError(
                f"Could not retrieve Twitch stream for {channel}. Is the channel live?")

        return response.text
