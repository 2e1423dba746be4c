import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from gestao import comunicacao, financeiro, services
from gestao.auth_models import Usuario
from gestao.auth_security import create_access_token, get_subject
from gestao.auth_service import (
    atualiza_usuario,
    cria_usuario,
    existe_usuario,
    exige_permissao,
    garante_master_admin,
    get_usuario,
    get_usuario_ativo,
    lista_usuarios,
    login,
    remove_usuario,
    usuario_publico,
)
from gestao.config import CORS_ORIGINS, DB_CONNECT_RETRIES, IS_PRODUCTION, LOG_FORMAT, LOG_LEVEL, MASTER_EMAIL
from gestao.db import banco_disponivel, verificar_conexao
from gestao.erros import NaoEncontrado, SemPermissao
from gestao.schemas import (
    AgendaIn,
    AtendimentoIn,
    CampanhaAutomaticaIn,
    CampanhaIn,
    CategoriaIn,
    ClienteIn,
    ConfiguracaoComunicacaoIn,
    ConsultorIn,
    EmpresaIn,
    FiltroMarketing,
    FormaPagamentoIn,
    HistoricoIn,
    LoginIn,
    PagamentoIn,
    ReciboIn,
    ServicoIn,
    StatusIn,
    TemplateComunicacaoIn,
    TesteConfiguracaoIn,
    UsuarioCreateIn,
    UsuarioUpdateIn,
)
from gestao.seed import seed_base

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>); auto_error=False para responder com a nossa mensagem
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

app = FastAPI(title="Cadastro Fácil Gestão API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup

@app.on_event("startup")
def startup() -> None:
    if not verificar_conexao(retries=DB_CONNECT_RETRIES):
        logger.error("Subindo sem banco de dados disponível")
        return
    # Cria tabelas e dados base (idempotente)
    services.init_db()
    seed_base()


# Logging e erros

@app.middleware("http")
async def log_requests(request: Request, call_next):
    inicio = time.monotonic()
    response = await call_next(request)
    logger.info("%s %s -> %s (%.0fms)", request.method, request.url.path, response.status_code, (time.monotonic() - inicio) * 1000)
    return response


def _erro(status_code: int, mensagem: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": mensagem})


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def payload_invalido(request: Request, exc: RequestValidationError) -> JSONResponse:
    campos = ", ".join(".".join(str(p) for p in e["loc"][1:]) or str(e["loc"][0]) for e in exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": f"Dados inválidos: {campos}", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(NaoEncontrado)
async def nao_encontrado(request: Request, exc: NaoEncontrado) -> JSONResponse:
    return _erro(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(SemPermissao)
async def sem_permissao(request: Request, exc: SemPermissao) -> JSONResponse:
    return _erro(status.HTTP_403_FORBIDDEN, str(exc))


@app.exception_handler(ValueError)
async def dados_invalidos(request: Request, exc: ValueError) -> JSONResponse:
    return _erro(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(Exception)
async def erro_interno(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Erro na aplicação: %s %s", request.method, request.url.path)
    content = {"success": False, "error": "Erro interno do servidor"}
    if not IS_PRODUCTION:
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    return {"success": True, "data": data, **extra}


def _dados(payload: BaseModel) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True)


# Dependências auth

def get_current_user(token: str | None = Depends(oauth2_scheme)) -> Usuario:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token não fornecido")
    # proteção extra: remove espaços / aspas acidentais
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id or not user_id.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    u = get_usuario_ativo(int(user_id))
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não encontrado")
    return u


def requer(permissao: str) -> Callable[..., Usuario]:
    def _dep(user: Usuario = Depends(get_current_user)) -> Usuario:
        exige_permissao(user, permissao)
        return user

    return _dep


def _emite_token(u: Usuario) -> str:
    return create_access_token(subject=str(u.id), extra={"email": u.email, "perfil": u.perfil.value})


# PUBLIC endpoints (sem JWT; o setup só até existir o primeiro usuário)

@app.get("/health")
def health() -> JSONResponse:
    agora = datetime.now(timezone.utc).isoformat()
    if banco_disponivel():
        return JSONResponse(status_code=200, content={"status": "OK", "timestamp": agora, "database": "connected"})
    return JSONResponse(status_code=503, content={"status": "ERROR", "timestamp": agora, "database": "disconnected"})


@app.get("/api/test")
def api_test() -> dict[str, Any]:
    return {"message": "API funcionando!", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/auth/login")
def api_login(payload: LoginIn) -> dict[str, Any]:
    u = login(payload.email, payload.senha)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")
    return {"success": True, "token": _emite_token(u), "usuario": usuario_publico(u)}


@app.post("/api/auth/token")
def api_token(form: OAuth2PasswordRequestForm = Depends()) -> dict[str, Any]:
    """Login no formato OAuth2 (formulário), usado pelo botão Authorize do /docs."""
    u = login(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")
    return {"access_token": _emite_token(u), "token_type": "bearer"}


@app.get("/api/auth/verify")
def api_verify(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return {"success": True, "usuario": usuario_publico(user)}


def _libera_setup(token: str | None = Depends(oauth2_scheme)) -> None:
    """Setup aberto só enquanto o banco não tem usuários; depois exige quem gerencia usuários."""
    if existe_usuario():
        exige_permissao(get_current_user(token), "canManageUsers")


@app.post("/api/setup/create-master", dependencies=[Depends(_libera_setup)])
def api_create_master() -> dict[str, Any]:
    admin = garante_master_admin()
    return ok(admin, message="Usuário master configurado com sucesso", email=MASTER_EMAIL)


@app.get("/api/setup/check-users", dependencies=[Depends(_libera_setup)])
def api_check_users() -> dict[str, Any]:
    users = lista_usuarios()
    return {"success": True, "users": users, "total": len(users)}


# Usuários

@app.get("/api/usuarios")
def api_usuarios(user: Usuario = Depends(requer("canManageUsers"))) -> dict[str, Any]:
    return ok(lista_usuarios())


@app.get("/api/usuarios/{user_id}")
def api_usuario(user_id: int, user: Usuario = Depends(requer("canManageUsers"))) -> dict[str, Any]:
    return ok(get_usuario(user_id))


@app.post("/api/usuarios", status_code=201)
def api_cria_usuario(payload: UsuarioCreateIn, user: Usuario = Depends(requer("canManageUsers"))) -> dict[str, Any]:
    return ok(cria_usuario(payload.nome, payload.email, payload.senha, payload.perfil))


@app.put("/api/usuarios/{user_id}")
def api_atualiza_usuario(user_id: int, payload: UsuarioUpdateIn, user: Usuario = Depends(requer("canManageUsers"))) -> dict[str, Any]:
    return ok(atualiza_usuario(user_id, **_dados(payload)))


@app.delete("/api/usuarios/{user_id}")
def api_remove_usuario(user_id: int, user: Usuario = Depends(requer("canManageUsers"))) -> dict[str, Any]:
    if user_id == user.id:
        raise ValueError("Não é possível excluir o próprio usuário.")
    exige_permissao(user, "canDeleteRecords")
    remove_usuario(user_id)
    return {"success": True, "message": "Usuário deletado com sucesso"}


# Cadastros auxiliares (mesmas rotas para cada tabela)

def router_cadastro(tipo: str, schema: type[BaseModel]) -> APIRouter:
    router = APIRouter(prefix=f"/api/{tipo}", tags=[tipo])

    @router.get("")
    def listar(ativo: bool = False, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
        return ok(services.lista_cadastro(tipo, somente_ativos=ativo))

    @router.get("/{obj_id}")
    def obter(obj_id: int, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
        return ok(services.get_cadastro(tipo, obj_id))

    @router.post("", status_code=201)
    def criar(payload: schema, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:  # type: ignore[valid-type]
        return ok(services.cria_cadastro(tipo, _dados(payload), usuario_id=user.id))

    @router.put("/{obj_id}")
    def atualizar(obj_id: int, payload: schema, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:  # type: ignore[valid-type]
        return ok(services.atualiza_cadastro(tipo, obj_id, _dados(payload), usuario_id=user.id))

    @router.delete("/{obj_id}")
    def remover(obj_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
        return ok(services.remove_cadastro(tipo, obj_id, usuario_id=user.id))

    return router


for _tipo, _schema in (
    ("categorias", CategoriaIn),
    ("origens", CategoriaIn),
    ("servicos", ServicoIn),
    ("consultores", ConsultorIn),
    ("formas-pagamento", FormaPagamentoIn),
):
    app.include_router(router_cadastro(_tipo, _schema))


# Configuração (listagens para os formulários)

@app.get("/api/configuracao/empresa")
def api_empresa(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(financeiro.get_configuracao_empresa())


@app.put("/api/configuracao/empresa")
def api_salva_empresa(payload: EmpresaIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(financeiro.salva_configuracao_empresa(_dados(payload), usuario_id=user.id))


@app.get("/api/configuracao/tipos-recibo")
def api_tipos_recibo(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(financeiro.lista_tipos_recibo())


@app.get("/api/configuracao/{tipo}")
def api_configuracao(tipo: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.lista_cadastro(tipo))


# Clientes

@app.get("/api/clientes")
def api_clientes(
    nome: str | None = None,
    cpf: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
    categoria_id: int | None = None,
    origem_id: int | None = None,
    ativo: bool | None = None,
    order_by: str = Query("created_at", alias="orderBy"),
    order_direction: str = Query("desc", alias="orderDirection"),
    limit: int = Query(50, ge=0, le=500),
    offset: int = Query(0, ge=0),
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(
        services.lista_clientes(
            nome=nome,
            cpf=cpf,
            email=email,
            telefone=telefone,
            categoria_id=categoria_id,
            origem_id=origem_id,
            ativo=ativo,
            order_by=order_by,
            order_direction=order_direction,
            limit=limit,
            offset=offset,
        )
    )


@app.get("/api/clientes/{cliente_id}")
def api_cliente(cliente_id: int, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.get_cliente(cliente_id))


@app.post("/api/clientes", status_code=201)
def api_cria_cliente(payload: ClienteIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.cria_cliente(_dados(payload), usuario_id=user.id))


@app.put("/api/clientes/{cliente_id}")
def api_atualiza_cliente(cliente_id: int, payload: ClienteIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.atualiza_cliente(cliente_id, _dados(payload), usuario_id=user.id))


@app.delete("/api/clientes/{cliente_id}")
def api_remove_cliente(cliente_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
    services.remove_cliente(cliente_id, usuario_id=user.id)
    return {"success": True, "message": "Cliente excluído com sucesso"}


# Agenda e histórico

@app.get("/api/agenda")
def api_agenda(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    consultor_id: int | None = None,
    status_agenda: str | None = Query(None, alias="status"),
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(services.lista_agenda(data_inicio, data_fim, consultor_id, status_agenda))


@app.post("/api/agenda", status_code=201)
def api_cria_agendamento(payload: AgendaIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.cria_agendamento(**payload.model_dump(), usuario_id=user.id))


@app.patch("/api/agenda/{agenda_id}/status")
def api_status_agendamento(agenda_id: int, payload: StatusIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.atualiza_status_agendamento(agenda_id, payload.status, usuario_id=user.id))


@app.post("/api/agenda/{agenda_id}/atendimento", status_code=201)
def api_registra_atendimento(agenda_id: int, payload: AtendimentoIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.registra_atendimento(agenda_id, **payload.model_dump(), usuario_id=user.id))


@app.get("/api/historico")
def api_historico(
    cliente_id: int | None = None,
    consultor_id: int | None = None,
    data_inicio: date | None = None,
    data_fim: date | None = None,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(services.lista_historico(cliente_id, consultor_id, data_inicio, data_fim))


@app.get("/api/historico/diario")
def api_historico_diario(dia: date = Query(...), user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.historico_diario(dia))


@app.post("/api/historico", status_code=201)
def api_cria_historico(payload: HistoricoIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(services.cria_evento_historico(**payload.model_dump(), usuario_id=user.id))


# Caixa

@app.get("/api/pagamentos")
def api_pagamentos(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    tipo_transacao: str | None = None,
    user: Usuario = Depends(requer("canManagePayments")),
) -> dict[str, Any]:
    return ok(financeiro.lista_pagamentos(data_inicio, data_fim, tipo_transacao))


@app.get("/api/pagamentos/resumo")
def api_resumo_caixa(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    user: Usuario = Depends(requer("canManagePayments")),
) -> dict[str, Any]:
    return ok(financeiro.resumo_caixa(data_inicio, data_fim))


@app.post("/api/pagamentos", status_code=201)
def api_registra_pagamento(payload: PagamentoIn, user: Usuario = Depends(requer("canManagePayments"))) -> dict[str, Any]:
    return ok(financeiro.registra_pagamento(**payload.model_dump(), usuario_id=user.id))


@app.get("/api/pagamentos/{pagamento_id}/parcelas")
def api_parcelas(pagamento_id: int, user: Usuario = Depends(requer("canManagePayments"))) -> dict[str, Any]:
    return ok(financeiro.lista_parcelas(pagamento_id))


@app.post("/api/parcelas/{parcela_id}/pagar")
def api_paga_parcela(parcela_id: int, user: Usuario = Depends(requer("canManagePayments"))) -> dict[str, Any]:
    return ok(financeiro.marca_parcela_paga(parcela_id))


@app.get("/api/comissoes")
def api_comissoes(
    consultor_id: int | None = None,
    data_inicio: date | None = None,
    data_fim: date | None = None,
    user: Usuario = Depends(requer("canViewReports")),
) -> dict[str, Any]:
    return ok(financeiro.lista_comissoes(consultor_id, data_inicio, data_fim))


@app.get("/api/comissoes/extrato")
def api_extrato_comissao(
    consultor_id: int = Query(...),
    data_inicio: date | None = None,
    data_fim: date | None = None,
    user: Usuario = Depends(requer("canViewReports")),
) -> dict[str, Any]:
    return ok(financeiro.extrato_comissao(consultor_id, data_inicio, data_fim))


# Recibos

@app.get("/api/recibos")
def api_recibos(cliente_id: int | None = None, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(financeiro.lista_recibos(cliente_id))


@app.get("/api/recibos/{recibo_id}")
def api_recibo(recibo_id: int, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(financeiro.get_recibo(recibo_id))


@app.post("/api/recibos", status_code=201)
def api_cria_recibo(payload: ReciboIn, user: Usuario = Depends(requer("canManagePayments"))) -> dict[str, Any]:
    return ok(financeiro.cria_recibo(**payload.model_dump(), usuario_id=user.id))


# Relatórios

@app.get("/api/estatisticas")
def api_estatisticas(user: Usuario = Depends(requer("canViewReports"))) -> dict[str, Any]:
    return ok(services.estatisticas())


@app.get("/api/dashboard/financeiro")
def api_dashboard_financeiro(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    user: Usuario = Depends(requer("canViewReports")),
) -> dict[str, Any]:
    return ok(financeiro.dashboard_financeiro(data_inicio, data_fim))


@app.get("/api/audit_logs")
def api_audit_logs(
    data_inicio: date | None = Query(None, alias="dataInicio"),
    data_fim: date | None = Query(None, alias="dataFim"),
    tabela: str | None = None,
    user: Usuario = Depends(requer("canViewReports")),
) -> dict[str, Any]:
    return ok(services.lista_audit_logs(data_inicio, data_fim, tabela))


# Comunicação / marketing

@app.get("/api/comunicacao/configuracoes")
def api_configs_comunicacao(user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.lista_configuracoes())


@app.post("/api/comunicacao/configuracoes", status_code=201)
def api_cria_config_comunicacao(payload: ConfiguracaoComunicacaoIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.cria_configuracao(_dados(payload), usuario_id=user.id))


@app.put("/api/comunicacao/configuracoes/{config_id}")
def api_atualiza_config_comunicacao(config_id: int, payload: ConfiguracaoComunicacaoIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.atualiza_configuracao(config_id, _dados(payload), usuario_id=user.id))


@app.delete("/api/comunicacao/configuracoes/{config_id}")
def api_remove_config_comunicacao(config_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
    comunicacao.remove_configuracao(config_id, usuario_id=user.id)
    return {"success": True, "message": "Configuração removida"}


@app.post("/api/comunicacao/testar")
def api_testa_configuracao(payload: TesteConfiguracaoIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    r = comunicacao.testa_configuracao(payload.config_id, payload.destinatario, payload.mensagem, payload.assunto)
    return {"success": r.sucesso, "data": {"sucesso": r.sucesso, "id": r.external_id, "erro": r.erro}}


@app.get("/api/comunicacao/templates")
def api_templates(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(comunicacao.lista_templates())


@app.post("/api/comunicacao/templates", status_code=201)
def api_cria_template(payload: TemplateComunicacaoIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.cria_template(_dados(payload), usuario_id=user.id))


@app.put("/api/comunicacao/templates/{template_id}")
def api_atualiza_template(template_id: int, payload: TemplateComunicacaoIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.atualiza_template(template_id, _dados(payload), usuario_id=user.id))


@app.delete("/api/comunicacao/templates/{template_id}")
def api_remove_template(template_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
    comunicacao.remove_template(template_id, usuario_id=user.id)
    return {"success": True, "message": "Template removido"}


@app.post("/api/comunicacao/segmentacao")
def api_segmentacao(filtros: FiltroMarketing, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    total, clientes = comunicacao.segmenta_clientes(_dados(filtros))
    return ok(clientes, total=total)


@app.get("/api/comunicacao/campanhas")
def api_campanhas(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(comunicacao.lista_campanhas())


@app.post("/api/comunicacao/campanhas", status_code=201)
def api_cria_campanha(payload: CampanhaIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.cria_campanha(_dados(payload), usuario_id=user.id))


@app.put("/api/comunicacao/campanhas/{campanha_id}")
def api_atualiza_campanha(campanha_id: int, payload: CampanhaIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.atualiza_campanha(campanha_id, _dados(payload), usuario_id=user.id))


@app.delete("/api/comunicacao/campanhas/{campanha_id}")
def api_remove_campanha(campanha_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
    comunicacao.remove_campanha(campanha_id, usuario_id=user.id)
    return {"success": True, "message": "Campanha removida"}


@app.post("/api/comunicacao/campanhas/{campanha_id}/executar")
def api_executa_campanha(campanha_id: int, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.executa_campanha(campanha_id))


@app.get("/api/comunicacao/campanhas-automaticas")
def api_campanhas_automaticas(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(comunicacao.lista_campanhas_automaticas())


@app.post("/api/comunicacao/campanhas-automaticas", status_code=201)
def api_cria_campanha_automatica(payload: CampanhaAutomaticaIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.cria_campanha_automatica(_dados(payload), usuario_id=user.id))


@app.put("/api/comunicacao/campanhas-automaticas/{campanha_id}")
def api_atualiza_campanha_automatica(campanha_id: int, payload: CampanhaAutomaticaIn, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.atualiza_campanha_automatica(campanha_id, _dados(payload), usuario_id=user.id))


@app.delete("/api/comunicacao/campanhas-automaticas/{campanha_id}")
def api_remove_campanha_automatica(campanha_id: int, user: Usuario = Depends(requer("canDeleteRecords"))) -> dict[str, Any]:
    comunicacao.remove_campanha_automatica(campanha_id, usuario_id=user.id)
    return {"success": True, "message": "Campanha automática removida"}


@app.post("/api/comunicacao/campanhas-automaticas/executar")
def api_executa_automaticas(referencia: date | None = None, user: Usuario = Depends(requer("canManageSettings"))) -> dict[str, Any]:
    return ok(comunicacao.executa_campanhas_automaticas(referencia))


@app.get("/api/comunicacao/aniversariantes")
def api_aniversariantes(dias_antes: int = Query(0, ge=0), user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return ok(comunicacao.aniversariantes(dias_antes))


@app.get("/api/comunicacao/historico")
def api_historico_comunicacao(
    cliente_id: int | None = None,
    tipo: str | None = None,
    status_envio: str | None = Query(None, alias="status"),
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(comunicacao.lista_comunicacoes(cliente_id, tipo, status_envio))
