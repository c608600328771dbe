"""
modcar.routers package

⚠️ Não importe submódulos aqui.

Os routers são importados um a um em ``modcar.main``; importar tudo
aqui puxaria models/serviços antes da config estar pronta nos testes.
"""
