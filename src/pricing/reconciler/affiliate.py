"""eBay Partner Network URL tagging.

Outbound eBay links carry a fixed set of tracking parameters. Tagging is
idempotent: existing tracking parameters are replaced, every other query
parameter and the fragment are left as they were.
"""

from __future__ import annotations

import logging
from typing import Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.common.config import AffiliateSettings

logger = logging.getLogger(__name__)

# Order in which tracking parameters are appended
TRACKING_PARAMS = ("mkcid", "mkrid", "siteid", "campid", "toolid", "customid")


def tracking_params(affiliate: AffiliateSettings) -> list[tuple[str, str]]:
    return [
        ("mkcid", affiliate.mkcid),
        ("mkrid", affiliate.mkrid),
        ("siteid", affiliate.siteid),
        ("campid", affiliate.campaign_id),
        ("toolid", affiliate.toolid),
        ("customid", affiliate.custom_id),
    ]


def tag_affiliate_url(url: str, affiliate: AffiliateSettings) -> str:
    """Return ``url`` with the affiliate tracking parameters set.

    Malformed URLs (no scheme or host) are returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        logger.warning("Not tagging malformed URL: %s", url)
        return url
    if not parts.scheme or not parts.netloc:
        logger.warning("Not tagging malformed URL: %s", url)
        return url

    kept = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in TRACKING_PARAMS
    ]
    query = urlencode(kept + tracking_params(affiliate))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def affiliate_taggers(
    affiliate: AffiliateSettings,
) -> dict[str, Callable[[str], str]]:
    """URL taggers keyed by source name. Sources not listed are left as is."""
    return {"ebay": lambda url: tag_affiliate_url(url, affiliate)}
