"""
Transactions (receitas/despesas) and the shared subcategory list.
"""
