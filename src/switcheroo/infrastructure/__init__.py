"""Infrastructure layer — iptables, process signals, sockets.

This layer wraps everything outside the process: the packet-filter control
plane, signal delivery to other processes, and kernel socket binding.
It must never import from services, commands, or output.
"""
