"""Test package for ReflexTap.

Core tests drive the game controller with a fake clock and a polled
scheduler; UI smoke tests run headlessly using pygame's dummy video driver.
To run these tests, execute ``pytest`` from the project root.
"""
