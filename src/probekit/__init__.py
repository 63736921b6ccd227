"""
ProbeKit - Active Network Measurement Engine

Runs ping, traceroute, TCP/UDP reachability and DNS probes against a
target, folds the observations into statistics, enriches discovered
addresses with hostnames and locations, and drives remote measurement
tasks on cloud vantage points.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

__version__ = "0.1.0"
__author__ = "DNS Science.io"
__copyright__ = "Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company"
