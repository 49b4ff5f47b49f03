"""
Backend do Consultório de Psicologia.

Estrutura:
- config.py       : configuração via variáveis de ambiente / .env
- db.py           : engine e sessões SQLAlchemy
- models.py       : modelos ORM (pacientes, consultas, solicitações) e enums
- codigos.py      : códigos sequenciais P-00001 / S-00001 com retry em conflito
- services.py     : lógica de domínio (CRUD, busca, aprovação de solicitações)
- relatorios.py   : agregações para relatórios e dashboard
- notificacoes.py : e-mail de confirmação de consulta aprovada
- api_main.py     : API REST (FastAPI + JWT)
- cli.py          : comandos operacionais via linha de comando
"""
