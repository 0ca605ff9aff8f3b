"""
Storage module.

One adapter contract over two backends (SQLite through SQLAlchemy, and JSON
blobs in a key/value store), a factory choosing between them, and the
validating, retrying store wrapper callers use.
"""
