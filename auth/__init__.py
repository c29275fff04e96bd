"""auth/ -- Credential issuance and verification package for the portal.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/config
where a module builds its defaults from settings). It does NOT import from
api/. api/ imports from auth/, not the other way around.
"""
