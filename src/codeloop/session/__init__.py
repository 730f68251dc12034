"""Event plumbing between agent loops and user interfaces."""

from codeloop.session.wire import EventType, Wire, WireEvent

__all__ = ["EventType", "Wire", "WireEvent"]
