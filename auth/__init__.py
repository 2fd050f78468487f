"""auth/ -- Identity and session security package for LostFound.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. api/ wires auth/ together with
settings from core/, not the other way around.
"""
