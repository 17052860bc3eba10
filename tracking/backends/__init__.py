"""
Location providers: sources of device position fixes.
"""
from tracking.backends.base import LocationProvider, SampleGate, Subscription, WatchOptions
from tracking.backends.replay_backend import ReplayLocationProvider
from tracking.backends.udp_backend import UdpLocationProvider

__all__ = [
    'LocationProvider',
    'SampleGate',
    'Subscription',
    'WatchOptions',
    'ReplayLocationProvider',
    'UdpLocationProvider',
]
