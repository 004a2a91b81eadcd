"""Execution pipeline for the company runtime.

- **runner**: per-agent wake / drain / respond loop
- **tools**: built-in tool catalog and executor
- **safety**: deny-list filter for the ``bash`` tool
- **prompt**: system prompt composition (``PromptSpec``)
"""
