"""
Linkdrop - webhook-to-browser link relay.

Automation tools push links to a secret endpoint; a polling consumer
that cannot accept inbound connections picks them up and opens them.
"""

__version__ = "1.0.0"
