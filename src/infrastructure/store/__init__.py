from .http_store import HttpTalentStore
from .schemas import StoreSchemaError, parse_collection

__all__ = ["HttpTalentStore", "StoreSchemaError", "parse_collection"]
