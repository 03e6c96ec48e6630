"""
Database type compatibility layer for multiple database backends.
Handles UUID and JSON documents across SQLite and PostgreSQL.
"""
from sqlalchemy import TypeDecorator, String, Text
import uuid
import json


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Stored as a 36 character string on every backend.
    """
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class JSONB(TypeDecorator):
    """Platform-independent JSON document type.

    Serialized to text so SQLite and PostgreSQL behave the same.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, str):
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, (dict, list)):
            return value
        if isinstance(value, str):
            return json.loads(value)
        return value
