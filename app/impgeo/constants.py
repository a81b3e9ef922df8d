"""
Central constants for the IMPGEO back office.
"""
from __future__ import annotations

ROLES = ("admin", "user", "guest")

# Ordered from weakest to strongest.
ACCESS_LEVELS = ("view", "write", "edit")

# (module_key, module_name, icon_name, description)
DEFAULT_MODULES = (
    ("dashboard", "Dashboard", "BarChart3", "Visão geral dos indicadores financeiros"),
    ("projects", "Projetos", "FolderOpen", "Gestão de projetos e andamento"),
    ("services", "Serviços", "Briefcase", "Catálogo de serviços oferecidos"),
    ("products", "Produtos", "Package", "Catálogo de produtos, estoque e vendas"),
    ("reports", "Relatórios", "FileText", "Relatórios financeiros e operacionais"),
    ("metas", "Metas", "Target", "Acompanhamento de metas"),
    ("projecao", "Projeção", "LineChart", "Projeção orçamentária de doze meses"),
    ("transactions", "Transações", "Wallet", "Lançamentos de receitas e despesas"),
    ("clients", "Clientes", "Users", "Cadastro de clientes"),
    ("dre", "DRE", "Calculator", "Demonstração do resultado do exercício"),
    ("acompanhamentos", "Acompanhamentos", "ClipboardList", "Acompanhamento de imóveis rurais"),
    ("admin", "Admin", "Shield", "Administração de usuários e módulos"),
)

DEFAULT_MODULE_KEYS = tuple(m[0] for m in DEFAULT_MODULES)

# role -> (excluded module keys, access level)
ROLE_DEFAULTS = {
    "admin": (frozenset(), "edit"),
    "user": (frozenset({"admin"}), "write"),
    "guest": (frozenset({"admin", "dre", "acompanhamentos"}), "view"),
}

DEFAULT_SUBCATEGORIES = (
    "ALUGUEL + INTERNET",
    "ANUIDADE CREA IMP",
    "ANUIDADE CREA SÓCIOS",
    "ART",
    "Auxiliar de Campo",
    "CDB",
    "CELULAR",
    "CONFRAS E REFEIÇÕES",
    "CONSELHO REG ENG",
    "CONSULTOR",
    "CONTADOR",
    "DARF",
    "Despesa variável de projetos",
    "FGTS",
    "GUIA DAS",
    "ISS",
    "Locomoção",
    "Manutenções",
    "Materiais Extras",
    "MATERIAL ESCRITÓRIO",
    "MICROSOFT 365",
    "ONR",
    "PLUXEE BENEFICIOS",
    "Produção Conteúdo",
    "Reembolso projetos",
    "RTK",
    "SEGURO DRONE",
    "SEGURO RTK",
    "Sindicato",
    "SITE",
    "Social Media",
    "Tráfego/SEO",
)

MONTHS_PER_YEAR = 12
