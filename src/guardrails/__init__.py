"""Admission control for the generate API.

A kill switch and two layers of rate limiting (per client, global daily)
composed into one ordered, fail-fast gate.
"""
