"""
Scoring modules for PermitVerify.

Confidence recalibration of classifier output and composite lead scoring.
"""
