"""
Excel templates, import and export (openpyxl) for transactions, products,
clients, projects and acompanhamentos.
"""
