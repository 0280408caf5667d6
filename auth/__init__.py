"""auth/ -- Credential verification and claims issuing for claimgate.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
main.py (the CLI) imports from auth/, not the other way around.
"""
