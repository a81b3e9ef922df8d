"""Products registry (price, cost, stock, sold)."""
