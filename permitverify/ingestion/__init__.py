"""
Data ingestion module for PermitVerify.

Handles loading of permit batches from local files and validation
against the common permit schema.
"""
