"""
mc_launcher package
-------------------
Process supervisor and remote console for Minecraft-style dedicated servers.
Contains modules for configuration, logging, console output parsing,
process management, RCON, server installation and an HTTP control API.
"""

__version__ = "0.1.0"
