"""Reasoning engines: tree-of-thought family and reflexion family."""
