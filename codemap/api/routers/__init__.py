"""
API Routers.

Exports:
- codes: compress and decompress endpoints
- system: health and status endpoints
- admin: record listing and removal
"""

from codemap.api.routers import admin, codes, system

codes_router = codes.router
system_router = system.router
admin_router = admin.router

__all__ = [
    "codes",
    "system",
    "admin",
    "codes_router",
    "system_router",
    "admin_router",
]
