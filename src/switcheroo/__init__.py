"""switcheroo — zero-downtime process handover via iptables NAT redirects."""

__version__ = "0.1.0"
