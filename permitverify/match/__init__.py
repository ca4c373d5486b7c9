"""
Matching modules for PermitVerify.

Pairwise duplicate detection from address similarity and geographic
proximity.
"""
