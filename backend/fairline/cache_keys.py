"""Cache key convention: ``<namespace>:<provider_or_type>:<discriminator>``."""


def raw_payload_key(provider_id: str, endpoint_key: str) -> str:
    return f"raw:{provider_id}:{endpoint_key}"


def raw_payload_pattern(provider_id: str) -> str:
    return f"raw:{provider_id}:*"


def normalized_key(provider_id: str, endpoint_key: str) -> str:
    return f"odds:{provider_id}:{endpoint_key}"


def failure_counter_key(provider_id: str, endpoint_key: str) -> str:
    return f"prefetch:failures:{provider_id}:{endpoint_key}"


def rate_limit_counter_key(provider_id: str, endpoint_key: str) -> str:
    return f"prefetch:ratelimit:{provider_id}:{endpoint_key}"


def diagnostic_key(provider_id: str, endpoint_key: str) -> str:
    return f"prefetch:diag:{provider_id}:{endpoint_key}"


def provider_health_key(provider_id: str) -> str:
    return f"provider:health:{provider_id}"


# Pub/sub channels announcing prefetch results to downstream subscribers.
UPDATES_CHANNEL = "prefetch:updates"
ERROR_CHANNEL = "prefetch:error"
