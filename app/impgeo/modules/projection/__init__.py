"""
Projection module.

- Budget series: twelve-month previsto / médio / máximo arrays per category
- Master projection fed by the "previsto" scenario of the revenue and expense series
- Snapshots taken before destructive operations, restorable per series
"""
