"""Storj network client on top of uplink-python (install the 'uplink' extra)."""
