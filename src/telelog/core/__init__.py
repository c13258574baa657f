"""Core domain package for telelog.

Core contains topic resolution and delivery orchestration without any
``logging``, HTTP or threading code, keeping the routing logic portable and
easy to test with plain values.
"""
