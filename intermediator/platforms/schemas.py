from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _as_text(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class SourceOrder(_ApiModel):
    """One record of ``GET /pedidos``."""

    id: str
    cliente: str = ""
    dataHora: Optional[str] = None
    status: Optional[str] = None
    detalhes: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return str(int(value))
        return value

    @field_validator("cliente", "detalhes", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> object:
        return _as_text(value)

    @field_validator("dataHora", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: object) -> object:
        if value is None:
            return None
        return _as_text(value)


class SourceOrdersResponse(_ApiModel):
    pedidos: List[SourceOrder]


class MenuProduct(_ApiModel):
    id: str
    nome: str
    valor: str = ""
    promocao: str = ""
    habilitado: bool = True

    @field_validator("id", "valor", "promocao", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        return _as_text(value)


class Menu(_ApiModel):
    nome: str = ""
    disponivel: bool = True
    produtos: List[MenuProduct] = Field(default_factory=list)


class MenuResponse(_ApiModel):
    sucesso: bool = False
    menus: List[Menu] = Field(default_factory=list)


class SaboritteProduct(_ApiModel):
    """One product of ``GET /cardapio-sab``; the category comes from the enclosing key."""

    id: str
    nome: str
    categoria: str = ""
    descricao: str = ""
    preco: str = ""
    ativo: bool = True
    codigoBarras: Optional[str] = None
    imagem: Optional[str] = None

    @field_validator("id", "nome", "categoria", "descricao", "preco", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        return _as_text(value)


class SaboritteMenuResponse(_ApiModel):
    sucesso: bool = False
    categorias: Dict[str, List[SaboritteProduct]] = Field(default_factory=dict)


class SaboritteClient(_ApiModel):
    """One record of ``GET /buscar-clientes-sab`` (camelCase flags on the wire)."""

    id: str
    nome: str = ""
    telefone: str = ""
    bloqueado: bool = False
    permitirRobo: bool = True
    permitirCampanhas: bool = True

    @field_validator("id", "nome", "telefone", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        return _as_text(value)


class SaboritteClientsResponse(_ApiModel):
    sucesso: bool = False
    clientes: List[SaboritteClient] = Field(default_factory=list)
    total_clientes: Optional[int] = None


class SubmitResponse(_ApiModel):
    sucesso: bool = False
    mensagem: Optional[str] = None

    @field_validator("mensagem", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        return None if value is None else _as_text(value)
