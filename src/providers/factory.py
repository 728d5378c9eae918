"""Provider factory: builds fix, geocode and POI providers from config."""

from shared_types import FixProviderKind

from .base import USER_AGENT, FixProvider, Geocoder, PoiSearch, ProviderError
from .rate_limit import TokenBucketRateLimiter
from .retry import retry_from_config


def create_fix_provider(config, transport=None) -> FixProvider:
    """Create the configured fix provider.

    Args:
        config: PlacelogConfig
        transport: httpx transport override for testing/DI (HTTP providers only)
    """
    section = config.fix_provider
    kind = FixProviderKind(section.kind)

    if kind == FixProviderKind.TERMUX:
        from .fix import TermuxFixProvider

        return TermuxFixProvider(command=section.termux_command)
    elif kind == FixProviderKind.IP:
        from .fix import IPFixProvider

        return IPFixProvider(
            url=section.ip_url,
            timeout=config.enrichment.timeout_seconds,
            retry_policy=retry_from_config(config.retry),
            transport=transport,
        )
    elif kind == FixProviderKind.STATIC:
        from .fix import StaticFixProvider

        return StaticFixProvider(
            latitude=section.static_latitude,
            longitude=section.static_longitude,
            accuracy_m=section.static_accuracy_m,
        )
    else:
        raise ProviderError(f"Unknown fix provider: {kind}. Use: termux, ip, static")


def create_geocoder(config, transport=None) -> Geocoder:
    from .geocode import NominatimGeocoder

    enrichment = config.enrichment
    limits = config.rate_limits.nominatim
    return NominatimGeocoder(
        base_url=enrichment.nominatim_url,
        accept_language=enrichment.accept_language,
        user_agent=enrichment.user_agent or USER_AGENT,
        timeout=enrichment.timeout_seconds,
        rate_limiter=TokenBucketRateLimiter.from_config(limits),
        retry_policy=retry_from_config(config.retry),
        transport=transport,
    )


def create_poi_search(config, transport=None) -> PoiSearch:
    from .poi import OverpassPoiSearch

    enrichment = config.enrichment
    limits = config.rate_limits.overpass
    return OverpassPoiSearch(
        base_url=enrichment.overpass_url,
        user_agent=enrichment.user_agent or USER_AGENT,
        timeout=enrichment.timeout_seconds,
        rate_limiter=TokenBucketRateLimiter.from_config(limits),
        retry_policy=retry_from_config(config.retry),
        transport=transport,
    )
