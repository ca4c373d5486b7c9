"""
Merge modules for PermitVerify.

Folds duplicate permits into multi-signal leads.
"""
