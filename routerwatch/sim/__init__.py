"""Simulated devices for demos and tests."""

from routerwatch.sim.client import SimulatedDeviceClient

__all__ = ["SimulatedDeviceClient"]
