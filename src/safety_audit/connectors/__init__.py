"""Connectors for feed files and the vehicle datastore."""

from .base_connector import BaseAsyncConnector
from .datastore import (
    InMemoryDatastore,
    JsonFileDatastore,
    VehicleDatastore,
    create_datastore
)
from .file_reader import PandasFileReader, TabularFileReader
from .firebase_connector import FirebaseConnector, create_firebase_connector

__all__ = [
    'BaseAsyncConnector',
    'InMemoryDatastore',
    'JsonFileDatastore',
    'VehicleDatastore',
    'create_datastore',
    'PandasFileReader',
    'TabularFileReader',
    'FirebaseConnector',
    'create_firebase_connector'
]
