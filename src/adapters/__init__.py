"""Adapters connecting the core to files, consoles and chat platforms."""
