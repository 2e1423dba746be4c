"""
Backend Cadastro Fácil Gestão.

Estrutura:
- config.py       : variáveis de ambiente (.env)
- db.py           : engine e sessões SQLAlchemy
- models.py       : modelos ORM e enums
- auth_*.py       : usuários, senha/JWT e permissões por perfil
- services.py     : cadastros, clientes, agenda, histórico, estatísticas, auditoria
- financeiro.py   : caixa, parcelas, comissões, recibos, empresa
- comunicacao.py  : provedores de envio, templates, segmentação, campanhas
- seed.py         : dados iniciais
- api_main.py     : API REST (FastAPI)
- cli.py          : operações via linha de comando
"""
