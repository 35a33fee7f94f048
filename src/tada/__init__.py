"""TADA! a tiny deploy agent.

A lightweight webhook service that runs pre-configured shell actions and
restarts or updates Docker containers on request, reloading its
configuration live as operators edit it.
"""

__version__ = "0.1.0"
