"""
Acompanhamentos: rural property compliance registry.

- CRUD + batch delete over property records (CAR, ITR, INCRA/CCIR, land-use areas)
- Share links: read-only public views over a selection, optional password and expiry
"""
