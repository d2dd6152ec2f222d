"""Core domain package for guildbridge.

Core contains pattern catalogs, line classification, relay-loop protection
and command correlation without any gateway or delivery-specific code, keeping
the engine portable across game connections and chat platforms.
"""
