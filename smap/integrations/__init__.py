"""Clients for the external platforms SMAP reads from and publishes to."""
