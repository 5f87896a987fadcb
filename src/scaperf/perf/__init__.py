"""Performance regression harness for scaperf.

Runs a build repeatedly under a candidate and a baseline plugin
version, aggregates wall-clock timings, and decides whether the
candidate has regressed beyond both a practical and a statistical
significance floor.
"""
