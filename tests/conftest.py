import os
from typing import Iterator, Optional

import pytest

from mongoutil import DocumentStoreClient, Namespace


@pytest.fixture(scope="session")
def mongo_uri() -> Optional[str]:
    """Return the live MongoDB URI if provided via env."""
    return os.getenv("MONGO_URI")


@pytest.fixture(scope="session")
def ns() -> Namespace:
    """The namespace the live tests write to."""
    return Namespace("testDB", "testColl")


@pytest.fixture
def live_client(mongo_uri: Optional[str], ns: Namespace) -> Iterator[DocumentStoreClient]:
    """Yield a client on a clean test collection; skip without a server."""
    if not mongo_uri:
        pytest.skip("MONGO_URI is not set")
    client = DocumentStoreClient(mongo_uri, connect_timeout=5)
    client.drop_collection(*ns)
    try:
        yield client
    finally:
        client.drop_collection(*ns)
        client.close()
