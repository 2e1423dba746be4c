from __future__ import annotations


class NaoEncontrado(LookupError):
    """Registro inexistente: a API responde 404 com a mensagem."""


class SemPermissao(PermissionError):
    """Perfil do usuário não autoriza a operação: a API responde 403."""
