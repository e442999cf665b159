"""
Services Package

External collaborators of the ledger engine. Currently only persistence.
"""
