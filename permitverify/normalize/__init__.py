"""
Data normalization modules for PermitVerify.

Handles standardization of permit addresses and loading of the shared
pipeline configuration.
"""
