"""
Deal Document Workflow Kernel

A replayable document-signing state machine over an append-only
action history, with:
- Closed role and action variants
- Append-only, immutable action history
- Typed, recoverable command errors
- Structured JSON logging
"""

__version__ = "0.1.0"
