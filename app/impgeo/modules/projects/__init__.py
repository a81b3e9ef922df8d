"""
Projects module.

Projects carry a status (ativo/pausado/concluido), progress 0..100 and the
list of services they include.
"""
