"""Sync agent: state store, remote adapters, sync engine and CLI."""
