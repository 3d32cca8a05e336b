"""AI Agents package."""

from jarvis_ledger.agents.command_parser import CommandParser, extract_json

__all__ = [
    "CommandParser",
    "extract_json",
]
