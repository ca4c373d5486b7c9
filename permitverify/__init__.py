"""
PermitVerify - Building Permit Lead Resolution Engine

Resolves duplicate permit records reported by multiple government data
sources and ranks the surviving leads with a composite confidence score.
"""

__version__ = "1.0.0"
__author__ = "PermitVerify Team"
