"""Database access layer for cqldao.

This sub-package holds the driver adapters, the data model and the error
types so that the DAO engine in :mod:`cqldao.core` stays storage-agnostic.
"""
