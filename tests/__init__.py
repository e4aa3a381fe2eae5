"""Test package for the Mathetris arithmetic drill.

Core tests drive the generator and session state machine headlessly with a
fake clock. UI smoke tests use pygame's dummy video driver to avoid opening
real windows. Run ``pytest`` from the project root.
"""
