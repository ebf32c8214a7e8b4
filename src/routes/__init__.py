"""
API Routes Package
==================
Shared route plumbing kept out of api.py.

Modules:
  helpers  - DB access, period windows, engine wiring, response shaping
"""
