"""Attested PDF intake and audit service."""
