"""auth/ -- The credential core: hashing, passcodes, identity store, login and passcode flows.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ and main.py import from auth/, not the
other way around.
"""
