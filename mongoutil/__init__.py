"""
mongoutil
Thin typed façade over PyMongo: namespaced CRUD, aggregation, indexes,
transactions and introspection on a single MongoDB connection.
"""

from .client import DocumentStoreClient, Namespace
from .errors import (
    BulkWriteFailure,
    ClientClosedError,
    ConfigurationError,
    DocumentNotFoundError,
    MongoUtilError,
)
from .results import BulkItemResult, BulkWriteReport

__version__ = "1.0.0"
__all__ = [
    "DocumentStoreClient",
    "Namespace",
    "BulkItemResult",
    "BulkWriteReport",
    "MongoUtilError",
    "DocumentNotFoundError",
    "ClientClosedError",
    "ConfigurationError",
    "BulkWriteFailure",
]
