"""CLI module for teams-bridge."""
