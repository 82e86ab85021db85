"""Entitlement resolution service."""
