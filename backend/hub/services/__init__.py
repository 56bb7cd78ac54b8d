"""Relay domain services: rooms, fan-out, presence, routing and timers.

These modules know nothing about Flask. Socket handlers and HTTP routes
reach them through the RelayHub stored on the application, keeping
transport concerns separated from room bookkeeping.
"""
