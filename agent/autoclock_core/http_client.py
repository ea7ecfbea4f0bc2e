"""
HTTP session with connection pooling, transport retry, and SSL CA bundle.

Transport-level retries are limited to idempotent methods. Clock-in and
clock-out are POSTs and must reach the server once per attempt; their retry
policy lives in token_manager.
"""

import os
import requests
import certifi
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_retry_strategy = Retry(
    total=3,
    backoff_factor=2,                           # Wait 2s, 4s, 8s between retries
    status_forcelist=[502, 503, 504],
    allowed_methods=["HEAD", "GET"],
)


def _get_ca_bundle():
    """Get the CA bundle path. Priority: env var → certifi."""
    env_ca = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    if env_ca and os.path.isfile(env_ca):
        return env_ca
    return certifi.where()


def create_session():
    """Create a new requests.Session with connection pooling, retry, and SSL."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=3,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = _get_ca_bundle()
    return session

