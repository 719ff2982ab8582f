"""Telegram bot that looks up cafeteria menus with fuzzy name matching."""

__version__ = "0.3.0"
