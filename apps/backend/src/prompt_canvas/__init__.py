"""Prompt Canvas backend: prompt graphs, cycle-safe edits and concurrent execution."""
