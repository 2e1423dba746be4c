"""
Comunicação com clientes: configurações de provedores, templates,
segmentação, campanhas de marketing e campanhas automáticas (aniversário).

O envio real é feito pela API HTTP do provedor (SendGrid, Twilio,
Meta WhatsApp Business); outros provedores são simulados.
"""
from __future__ import annotations

import calendar
import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

import requests
from sqlalchemy import extract, select
from sqlalchemy.exc import IntegrityError

from .config import COMMUNICATION_TIMEOUT
from .db import db_session
from .erros import NaoEncontrado
from .models import (
    CampanhaAutomatica,
    CampanhaMarketing,
    CanalComunicacao,
    Cliente,
    Comunicacao,
    ConfiguracaoComunicacao,
    StatusCampanha,
    StatusComunicacao,
    TemplateComunicacao,
    TriggerCampanha,
)
from .services import _aplica, _exige_existente, _get_ou_404, registra_auditoria

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
WHATSAPP_URL = "https://graph.facebook.com/v17.0/{phone_number_id}/messages"

LIMITE_SEGMENTACAO = 100

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class ResultadoEnvio:
    sucesso: bool
    external_id: str | None = None
    erro: str | None = None


def canal(valor: str | CanalComunicacao) -> CanalComunicacao:
    if isinstance(valor, CanalComunicacao):
        return valor
    try:
        return CanalComunicacao(valor)
    except ValueError:
        raise ValueError(f"Tipo de comunicação inválido: {valor}") from None


# =========================
# Templates
# =========================
def renderiza_template(conteudo: str, variaveis: dict[str, Any]) -> str:
    """Troca {{variavel}}; placeholders sem valor ficam como estão."""

    def _troca(m: re.Match) -> str:
        chave = m.group(1)
        if chave in variaveis and variaveis[chave] is not None:
            return str(variaveis[chave])
        return m.group(0)

    return _PLACEHOLDER.sub(_troca, conteudo)


def variaveis_cliente(c: Cliente) -> dict[str, Any]:
    return {
        "nome": c.nome,
        "primeiro_nome": c.nome.split()[0] if c.nome else "",
        "email": c.email,
        "telefone": c.telefone,
        "cidade": c.cidade,
        "data_nascimento": c.data_nascimento.strftime("%d/%m") if c.data_nascimento else None,
    }


# =========================
# CRUD genérico (configurações, templates, campanhas)
# =========================
_ENUMS: dict[str, type] = {
    "tipo_servico": CanalComunicacao,
    "tipo": CanalComunicacao,
    "tipo_comunicacao": CanalComunicacao,
    "status": StatusCampanha,
    "tipo_trigger": TriggerCampanha,
}


def _converte_enums(dados: dict[str, Any]) -> dict[str, Any]:
    convertidos = dict(dados)
    for campo, enum_cls in _ENUMS.items():
        v = convertidos.get(campo)
        if v is not None and not isinstance(v, enum_cls):
            try:
                convertidos[campo] = enum_cls(v)
            except ValueError:
                raise ValueError(f"Valor inválido para {campo}: {v}") from None
    return convertidos


def _lista(modelo, ordem) -> list[dict[str, Any]]:
    with db_session() as s:
        return [o.to_dict() for o in s.scalars(select(modelo).order_by(ordem))]


def _cria(modelo, dados: dict[str, Any], obrigatorios: Iterable[str], usuario_id: int | None) -> dict[str, Any]:
    faltando = [c for c in obrigatorios if dados.get(c) in (None, "")]
    if faltando:
        raise ValueError(f"Campos obrigatórios: {', '.join(faltando)}")
    with db_session() as s:
        if dados.get("template_id") is not None:
            _exige_existente(s, TemplateComunicacao, dados["template_id"], "Template inválido")
        obj = modelo()
        _aplica(obj, {k: v for k, v in _converte_enums(dados).items() if v is not None})
        s.add(obj)
        s.flush()
        novo = obj.to_dict()
        registra_auditoria(s, modelo.__tablename__, obj.id, "INSERT", depois=novo, usuario_id=usuario_id)
        return novo


def _atualiza(modelo, obj_id: int, dados: dict[str, Any], mensagem: str, usuario_id: int | None) -> dict[str, Any]:
    with db_session() as s:
        obj = _get_ou_404(s, modelo, obj_id, mensagem)
        if dados.get("template_id") is not None:
            _exige_existente(s, TemplateComunicacao, dados["template_id"], "Template inválido")
        antes = obj.to_dict()
        _aplica(obj, _converte_enums(dados))
        obj.updated_at = datetime.utcnow()
        s.flush()
        depois = obj.to_dict()
        registra_auditoria(s, modelo.__tablename__, obj.id, "UPDATE", antes, depois, usuario_id)
        return depois


def _remove(modelo, obj_id: int, mensagem: str, usuario_id: int | None) -> None:
    try:
        with db_session() as s:
            obj = _get_ou_404(s, modelo, obj_id, mensagem)
            antes = obj.to_dict()
            s.delete(obj)
            s.flush()
            registra_auditoria(s, modelo.__tablename__, obj_id, "DELETE", antes=antes, usuario_id=usuario_id)
    except IntegrityError:
        raise ValueError("Registro em uso: desative em vez de excluir.") from None


def lista_configuracoes() -> list[dict[str, Any]]:
    return _lista(ConfiguracaoComunicacao, ConfiguracaoComunicacao.id)


def cria_configuracao(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _cria(ConfiguracaoComunicacao, dados, ("tipo_servico", "provider"), usuario_id)


def atualiza_configuracao(config_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _atualiza(ConfiguracaoComunicacao, config_id, dados, "Configuração não encontrada", usuario_id)


def remove_configuracao(config_id: int, usuario_id: int | None = None) -> None:
    _remove(ConfiguracaoComunicacao, config_id, "Configuração não encontrada", usuario_id)


def lista_templates() -> list[dict[str, Any]]:
    return _lista(TemplateComunicacao, TemplateComunicacao.nome)


def cria_template(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _cria(TemplateComunicacao, dados, ("nome", "tipo", "conteudo"), usuario_id)


def atualiza_template(template_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _atualiza(TemplateComunicacao, template_id, dados, "Template não encontrado", usuario_id)


def remove_template(template_id: int, usuario_id: int | None = None) -> None:
    _remove(TemplateComunicacao, template_id, "Template não encontrado", usuario_id)


def lista_campanhas() -> list[dict[str, Any]]:
    return _lista(CampanhaMarketing, CampanhaMarketing.created_at.desc())


def cria_campanha(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _cria(CampanhaMarketing, dados, ("nome", "tipo_comunicacao"), usuario_id)


def atualiza_campanha(campanha_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _atualiza(CampanhaMarketing, campanha_id, dados, "Campanha não encontrada", usuario_id)


def remove_campanha(campanha_id: int, usuario_id: int | None = None) -> None:
    _remove(CampanhaMarketing, campanha_id, "Campanha não encontrada", usuario_id)


def lista_campanhas_automaticas() -> list[dict[str, Any]]:
    return _lista(CampanhaAutomatica, CampanhaAutomatica.nome)


def cria_campanha_automatica(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _cria(CampanhaAutomatica, dados, ("nome", "tipo_trigger", "template_id"), usuario_id)


def atualiza_campanha_automatica(campanha_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    return _atualiza(CampanhaAutomatica, campanha_id, dados, "Campanha automática não encontrada", usuario_id)


def remove_campanha_automatica(campanha_id: int, usuario_id: int | None = None) -> None:
    _remove(CampanhaAutomatica, campanha_id, "Campanha automática não encontrada", usuario_id)


# =========================
# Envio (provedores)
# =========================
def _id_simulado(prefixo: str) -> str:
    return f"{prefixo}_test_{int(time.time() * 1000)}"


def _envia_email(config: ConfiguracaoComunicacao, destinatario: str, assunto: str | None, mensagem: str) -> ResultadoEnvio:
    extras = config.configuracoes_extras or {}
    if config.provider != "SendGrid":
        return ResultadoEnvio(True, _id_simulado("email"))

    resp = requests.post(
        SENDGRID_URL,
        headers={"Authorization": f"Bearer {config.api_key}", "Content-Type": "application/json"},
        json={
            "personalizations": [{"to": [{"email": destinatario}], "subject": assunto or "Teste de Configuração"}],
            "from": {
                "email": extras.get("from_email", "teste@exemplo.com"),
                "name": extras.get("from_name", "Sistema de Testes"),
            },
            "content": [{"type": "text/plain", "value": mensagem}],
        },
        timeout=COMMUNICATION_TIMEOUT,
    )
    if resp.ok:
        return ResultadoEnvio(True, resp.headers.get("X-Message-Id"))
    return ResultadoEnvio(False, erro=f"SendGrid Error: {resp.text}")


def _envia_sms(config: ConfiguracaoComunicacao, destinatario: str, mensagem: str) -> ResultadoEnvio:
    extras = config.configuracoes_extras or {}
    if config.provider != "Twilio":
        return ResultadoEnvio(True, _id_simulado("sms"))

    account_sid = extras.get("account_sid")
    auth_token = config.api_secret
    if not account_sid or not auth_token:
        return ResultadoEnvio(False, erro="Credenciais Twilio incompletas")

    resp = requests.post(
        TWILIO_URL.format(account_sid=account_sid),
        auth=(account_sid, auth_token),
        data={"To": destinatario, "From": extras.get("from_number", "+1234567890"), "Body": mensagem},
        timeout=COMMUNICATION_TIMEOUT,
    )
    if resp.ok:
        return ResultadoEnvio(True, resp.json().get("sid"))
    return ResultadoEnvio(False, erro=f"Twilio Error: {resp.text}")


def _envia_whatsapp(config: ConfiguracaoComunicacao, destinatario: str, mensagem: str) -> ResultadoEnvio:
    extras = config.configuracoes_extras or {}
    if config.provider != "Meta WhatsApp Business":
        return ResultadoEnvio(True, _id_simulado("whatsapp"))

    phone_number_id = extras.get("phone_number_id")
    if not phone_number_id:
        return ResultadoEnvio(False, erro="Phone Number ID não configurado")

    resp = requests.post(
        WHATSAPP_URL.format(phone_number_id=phone_number_id),
        headers={"Authorization": f"Bearer {config.api_key}", "Content-Type": "application/json"},
        json={"messaging_product": "whatsapp", "to": destinatario, "type": "text", "text": {"body": mensagem}},
        timeout=COMMUNICATION_TIMEOUT,
    )
    if resp.ok:
        mensagens = resp.json().get("messages") or [{}]
        return ResultadoEnvio(True, mensagens[0].get("id"))
    return ResultadoEnvio(False, erro=f"Meta API Error: {resp.text}")


def envia_mensagem(config: ConfiguracaoComunicacao, destinatario: str, assunto: str | None, mensagem: str) -> ResultadoEnvio:
    """Despacha pelo provedor configurado. Falhas do provedor viram ResultadoEnvio(sucesso=False)."""
    try:
        if config.tipo_servico == CanalComunicacao.EMAIL:
            return _envia_email(config, destinatario, assunto, mensagem)
        if config.tipo_servico == CanalComunicacao.SMS:
            return _envia_sms(config, destinatario, mensagem)
        return _envia_whatsapp(config, destinatario, mensagem)
    except requests.RequestException as e:
        logger.error("Erro de comunicação com %s (%s): %s", config.provider, config.tipo_servico.value, e)
        return ResultadoEnvio(False, erro=f"{config.tipo_servico.value.upper()} Error: {e}")


def _config_ativa(s, tipo: CanalComunicacao) -> ConfiguracaoComunicacao | None:
    return s.scalars(
        select(ConfiguracaoComunicacao)
        .where(ConfiguracaoComunicacao.tipo_servico == tipo, ConfiguracaoComunicacao.ativo.is_(True))
        .order_by(ConfiguracaoComunicacao.id)
        .limit(1)
    ).first()


def _registra_comunicacao(s, tipo: CanalComunicacao, destinatario: str, assunto: str | None, conteudo: str, resultado: ResultadoEnvio, **refs: Any) -> Comunicacao:
    c = Comunicacao(
        tipo=tipo,
        destinatario=destinatario,
        assunto=assunto,
        conteudo=conteudo,
        status=StatusComunicacao.ENTREGUE if resultado.sucesso else StatusComunicacao.ERRO,
        erro_detalhe=resultado.erro,
        external_id=resultado.external_id,
        **refs,
    )
    s.add(c)
    return c


def testa_configuracao(config_id: int, destinatario: str, mensagem: str, assunto: str | None = None) -> ResultadoEnvio:
    with db_session() as s:
        config = s.get(ConfiguracaoComunicacao, config_id)
        if config is None:
            raise NaoEncontrado("Configuração não encontrada")
        if not config.ativo:
            raise ValueError("Configuração está inativa")

    resultado = envia_mensagem(config, destinatario, assunto, mensagem)
    with db_session() as s:
        _registra_comunicacao(s, config.tipo_servico, destinatario, assunto or "", mensagem, resultado)
    return resultado


def lista_comunicacoes(cliente_id: int | None = None, tipo: str | None = None, status: str | None = None, limit: int = 200) -> list[dict[str, Any]]:
    q = select(Comunicacao, Cliente.nome.label("cliente_nome")).outerjoin(Cliente, Cliente.id == Comunicacao.cliente_id)
    if cliente_id is not None:
        q = q.where(Comunicacao.cliente_id == cliente_id)
    if tipo:
        q = q.where(Comunicacao.tipo == canal(tipo))
    if status:
        try:
            q = q.where(Comunicacao.status == StatusComunicacao(status))
        except ValueError:
            raise ValueError(f"Status inválido: {status}") from None
    q = q.order_by(Comunicacao.data_envio.desc(), Comunicacao.id.desc()).limit(limit)
    with db_session() as s:
        return [{**r.Comunicacao.to_dict(), "cliente_nome": r.cliente_nome} for r in s.execute(q).all()]


# =========================
# Segmentação
# =========================
def _idade(nascimento: date, hoje: date) -> int:
    return hoje.year - nascimento.year - ((hoje.month, hoje.day) < (nascimento.month, nascimento.day))


def _query_segmento(filtros: dict[str, Any]):
    q = select(Cliente).where(Cliente.ativo.is_(True))
    if filtros.get("categoria_id"):
        q = q.where(Cliente.categoria_id.in_(filtros["categoria_id"]))
    if filtros.get("origem_id"):
        q = q.where(Cliente.origem_id.in_(filtros["origem_id"]))
    if filtros.get("cidade"):
        q = q.where(Cliente.cidade.in_(filtros["cidade"]))
    for opt_in in ("recebe_email", "recebe_sms", "recebe_whatsapp"):
        if filtros.get(opt_in) is not None:
            q = q.where(getattr(Cliente, opt_in).is_(bool(filtros[opt_in])))
    if filtros.get("aniversario_mes"):
        q = q.where(extract("month", Cliente.data_nascimento).in_(filtros["aniversario_mes"]))
    return q.order_by(Cliente.nome, Cliente.id)


def _filtra_idade(clientes: Iterable[Cliente], filtros: dict[str, Any], hoje: date) -> list[Cliente]:
    minima, maxima = filtros.get("idade_minima"), filtros.get("idade_maxima")
    if minima is None and maxima is None:
        return list(clientes)
    selecionados = []
    for c in clientes:
        if c.data_nascimento is None:
            continue
        idade = _idade(c.data_nascimento, hoje)
        if minima is not None and idade < minima:
            continue
        if maxima is not None and idade > maxima:
            continue
        selecionados.append(c)
    return selecionados


def _segmento(s, filtros: dict[str, Any], hoje: date | None = None) -> list[Cliente]:
    return _filtra_idade(s.scalars(_query_segmento(filtros)), filtros, hoje or date.today())


def segmenta_clientes(filtros: dict[str, Any], hoje: date | None = None) -> tuple[int, list[dict[str, Any]]]:
    """Retorna (total encontrado, primeiros 100 clientes)."""
    with db_session() as s:
        clientes = _segmento(s, filtros, hoje)
        return len(clientes), [c.to_dict() for c in clientes[:LIMITE_SEGMENTACAO]]


# =========================
# Campanhas
# =========================
def _contato(c: Cliente, tipo: CanalComunicacao) -> str | None:
    """Contato do canal, respeitando o opt-in do cliente."""
    if tipo == CanalComunicacao.EMAIL:
        return c.email if c.recebe_email else None
    if tipo == CanalComunicacao.SMS:
        return c.telefone if c.recebe_sms else None
    return c.telefone if c.recebe_whatsapp else None


@dataclass(frozen=True)
class Envio:
    cliente_id: int
    destinatario: str
    assunto: str | None
    conteudo: str


def _prepara_envios(template: TemplateComunicacao, clientes: Iterable[Cliente], tipo: CanalComunicacao) -> list[Envio]:
    envios = []
    for c in clientes:
        destinatario = _contato(c, tipo)
        if not destinatario:
            continue
        variaveis = variaveis_cliente(c)
        envios.append(
            Envio(
                cliente_id=c.id,
                destinatario=destinatario,
                assunto=renderiza_template(template.assunto, variaveis) if template.assunto else None,
                conteudo=renderiza_template(template.conteudo, variaveis),
            )
        )
    return envios


def _dispara(config: ConfiguracaoComunicacao | None, envios: list[Envio], tipo: CanalComunicacao) -> list[ResultadoEnvio]:
    """Chama o provedor para cada envio; deve rodar sem sessão aberta."""
    if config is None:
        return [ResultadoEnvio(False, erro=f"Nenhuma configuração ativa para {tipo.value}")] * len(envios)
    return [envia_mensagem(config, e.destinatario, e.assunto, e.conteudo) for e in envios]


def _registra_envios(s, tipo: CanalComunicacao, envios: list[Envio], resultados: list[ResultadoEnvio], houve_envio: bool, **refs: Any) -> dict[str, int]:
    totais = {"destinatarios": len(envios), "enviados": len(envios) if houve_envio else 0, "sucesso": 0, "erro": 0}
    for envio, resultado in zip(envios, resultados):
        totais["sucesso" if resultado.sucesso else "erro"] += 1
        _registra_comunicacao(
            s, tipo, envio.destinatario, envio.assunto, envio.conteudo, resultado,
            cliente_id=envio.cliente_id, **refs,
        )
    return totais


def executa_campanha(campanha_id: int, hoje: date | None = None) -> dict[str, Any]:
    """
    Executa uma campanha de marketing:
    - seleciona os clientes pelos filtros da campanha e marca como executando
    - envia o template renderizado pelo canal da campanha (fora da transação)
    - registra cada comunicação e atualiza os totais
    """
    with db_session() as s:
        camp = _get_ou_404(s, CampanhaMarketing, campanha_id, "Campanha não encontrada")
        if camp.status in (StatusCampanha.FINALIZADA, StatusCampanha.CANCELADA, StatusCampanha.EXECUTANDO):
            raise ValueError(f"Campanha com status '{camp.status.value}' não pode ser executada.")
        if not camp.ativo:
            raise ValueError("Campanha inativa.")
        if camp.template_id is None:
            raise ValueError("Campanha sem template.")
        template = s.get(TemplateComunicacao, camp.template_id)

        tipo, template_id, status_anterior = camp.tipo_comunicacao, template.id, camp.status
        config = _config_ativa(s, tipo)
        envios = _prepara_envios(template, _segmento(s, camp.filtros or {}, hoje), tipo)
        camp.status = StatusCampanha.EXECUTANDO

    try:
        resultados = _dispara(config, envios, tipo)
    except Exception:
        logger.exception("Falha no envio da campanha %s", campanha_id)
        with db_session() as s:
            s.get(CampanhaMarketing, campanha_id).status = status_anterior
        raise

    with db_session() as s:
        totais = _registra_envios(s, tipo, envios, resultados, config is not None, campanha_id=campanha_id, template_id=template_id)
        camp = s.get(CampanhaMarketing, campanha_id)
        camp.total_destinatarios = totais["destinatarios"]
        camp.total_enviados = totais["enviados"]
        camp.total_sucesso = totais["sucesso"]
        camp.total_erro = totais["erro"]
        camp.data_execucao = datetime.utcnow()
        camp.status = StatusCampanha.FINALIZADA
        s.flush()
        logger.info("Campanha %s finalizada: %s", camp.id, totais)
        return camp.to_dict()


def aniversariantes(dias_antes: int = 0, referencia: date | None = None) -> list[dict[str, Any]]:
    with db_session() as s:
        return [c.to_dict() for c in _aniversariantes(s, dias_antes, referencia or date.today())]


def _aniversariantes(s, dias_antes: int, referencia: date) -> list[Cliente]:
    alvo = referencia + timedelta(days=dias_antes)
    # 29/02 comemora em 28/02 nos anos não bissextos
    dias = [(alvo.month, alvo.day)]
    if (alvo.month, alvo.day) == (2, 28) and not calendar.isleap(alvo.year):
        dias.append((2, 29))

    q = select(Cliente).where(Cliente.ativo.is_(True), Cliente.data_nascimento.is_not(None)).order_by(Cliente.nome)
    return [c for c in s.scalars(q) if (c.data_nascimento.month, c.data_nascimento.day) in dias]


def executa_campanhas_automaticas(referencia: date | None = None) -> list[dict[str, Any]]:
    """Roda as campanhas automáticas de aniversário ativas para a data de referência."""
    referencia = referencia or date.today()
    planos = []
    with db_session() as s:
        campanhas = s.scalars(
            select(CampanhaAutomatica).where(
                CampanhaAutomatica.ativo.is_(True), CampanhaAutomatica.tipo_trigger == TriggerCampanha.ANIVERSARIO
            )
        ).all()
        for camp in campanhas:
            template = s.get(TemplateComunicacao, camp.template_id)
            if template is None or not template.ativo:
                logger.warning("Campanha automática %s sem template ativo", camp.id)
                continue
            clientes = _aniversariantes(s, camp.dias_antes or 0, referencia)
            if camp.filtros:
                ids = {c.id for c in _segmento(s, camp.filtros, referencia)}
                clientes = [c for c in clientes if c.id in ids]
            planos.append((camp.id, camp.nome, template.id, template.tipo, _config_ativa(s, template.tipo), _prepara_envios(template, clientes, template.tipo)))

    resultados = []
    for campanha_id, nome, template_id, tipo, config, envios in planos:
        enviados = _dispara(config, envios, tipo)
        with db_session() as s:
            totais = _registra_envios(s, tipo, envios, enviados, config is not None, template_id=template_id)
        resultados.append({"campanha_id": campanha_id, "nome": nome, **totais})
    return resultados
