"""
Blocking strategies for PermitVerify.

Restricts pairwise comparison to permits in the same city so that only
plausible duplicates are scored.
"""
