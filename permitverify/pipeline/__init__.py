"""Batch pipeline orchestration for PermitVerify."""
