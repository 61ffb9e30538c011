"""Shared infrastructure: logging, config files, task tracking, Tk/asyncio bridge."""
