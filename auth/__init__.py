"""auth/ -- Registration, login, and cookie session package for authcore.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, and db/.
It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
