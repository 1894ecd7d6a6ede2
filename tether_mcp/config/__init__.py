"""Configuration module for Tether MCP.

Provides focused classes for different configuration concerns:
- Config: Main configuration class (aggregates all components)
- SSHConfigParser: Parses ~/.ssh/config files into host snapshots
- HostKeyVerifier: Manages SSH host key verification
- Settings: Environment variable configuration
"""

from tether_mcp.config.host_keys import HostKeyVerifier
from tether_mcp.config.main import Config
from tether_mcp.config.parser import SSHConfigParser, parse_proxy_jump
from tether_mcp.config.settings import Settings

__all__ = ["Config", "HostKeyVerifier", "SSHConfigParser", "Settings", "parse_proxy_jump"]
