"""
Multi-chain EVM MCP server package.

This package exposes LLM-friendly tools for EVM-compatible chains, backed by a
multi-chain connection manager with endpoint failover and circuit breaking.
See DESIGN.md for details.
"""

__all__ = ["config"]
