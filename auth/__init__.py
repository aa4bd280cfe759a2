"""auth/ -- Authentication core for Blackbook accounts.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
Callers (main.py, any future transport layer) import from auth/, not the
other way around.
"""
