# =============================================================================
# Entity Tools — Baseline Data Access for Every Agent
# =============================================================================
#
# Query/detail tools over the practice-management CRUD layer (clients,
# folders/cases, tasks, folder movements, documents). The CRUD layer lives
# outside this package and is reached only through the EntityRepository
# protocol below.
#
# SECURITY: every repository call receives the `user_id` injected by
# ToolRegistry.execute(). Implementations MUST scope their queries by it:
#   - clients, folders, movements, documents: created by the user
#   - tasks: created by OR assigned to the user
# A record outside that scope is indistinguishable from a missing one.
#
# Limits are clamped here, before reaching the repository:
#   clients / folders / tasks ≤ 50, movements / documents ≤ 100
# =============================================================================

from __future__ import annotations

from typing import Any, Protocol

from legal_ai.tools.base import (
    Tool,
    clamp_limit,
    optional_bool,
    optional_int,
    required_int,
    sanitize_search,
)

CLIENT_NOT_FOUND = "Cliente não encontrado ou sem permissão de acesso"
FOLDER_NOT_FOUND = "Processo não encontrado ou sem permissão de acesso"


class EntityRepository(Protocol):
    """Read-only, user-scoped access to the CRUD entities. Rows are plain dicts."""

    async def list_clients(
        self,
        user_id: int,
        search: str | None = None,
        client_type: str | None = None,
        is_active: bool | None = None,
        limit: int = 10,
    ) -> list[dict]: ...

    async def get_client(self, user_id: int, client_id: int) -> dict | None:
        """Client with addresses, contacts and folders_count, or None."""
        ...

    async def list_folders(
        self,
        user_id: int,
        search: str | None = None,
        client_id: int | None = None,
        folder_type_id: int | None = None,
        status: str | None = None,
        limit: int = 10,
    ) -> list[dict]: ...

    async def get_folder(self, user_id: int, folder_id: int) -> dict | None:
        """Folder with client, parties and counters, or None."""
        ...

    async def list_tasks(
        self,
        user_id: int,
        status: str | None = None,
        priority: str | None = None,
        folder_id: int | None = None,
        assigned_to_id: int | None = None,
        overdue: bool | None = None,
        upcoming_days: int | None = None,
        limit: int = 20,
    ) -> list[dict]: ...

    async def list_movements(
        self,
        user_id: int,
        folder_id: int,
        days: int | None = None,
        requires_action: bool | None = None,
        is_deadline: bool | None = None,
        urgency_level: str | None = None,
        is_favorable: bool | None = None,
        limit: int = 20,
    ) -> list[dict]: ...

    async def list_documents(
        self,
        user_id: int,
        folder_id: int,
        document_type: str | None = None,
        limit: int = 20,
    ) -> list[dict]: ...


class _EntityTool(Tool):
    def __init__(self, entities: EntityRepository) -> None:
        self._entities = entities


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


class QueryClientsTool(_EntityTool):
    name = "query_clients"
    description = (
        "Busca clientes no sistema. Use para encontrar clientes por nome fantasia, "
        "razão social, documento (CPF/CNPJ) ou tipo. Retorna lista resumida de clientes."
    )
    parameters = {
        "type": "object",
        "properties": {
            "search": {
                "type": "string",
                "description": "Termo de busca para nome fantasia, razão social ou documento (CPF/CNPJ sem formatação)",
            },
            "client_type": {
                "type": "string",
                "enum": ["prospect", "prospect_sic", "prospect_dbm", "client", "board_contact", "news_contact"],
                "description": "Tipo do cliente",
            },
            "is_active": {
                "type": "boolean",
                "description": "Filtrar apenas clientes ativos (true) ou inativos (false)",
            },
            "limit": {
                "type": "number",
                "description": "Limite de resultados a retornar (padrão: 10, máximo: 50)",
                "default": 10,
            },
        },
        "required": [],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        clients = await self._entities.list_clients(
            params["user_id"],
            search=sanitize_search(params.get("search")),
            client_type=params.get("client_type"),
            is_active=optional_bool(params.get("is_active")),
            limit=clamp_limit(params.get("limit"), 10, 50),
        )
        return {"total": len(clients), "clients": clients}


class GetClientDetailsTool(_EntityTool):
    name = "get_client_details"
    description = (
        "Obtém detalhes completos de um cliente específico pelo ID. Retorna informações "
        "do cliente, endereços, contatos e contagem de processos/pastas associados."
    )
    parameters = {
        "type": "object",
        "properties": {
            "client_id": {"type": "number", "description": "ID do cliente a buscar"},
        },
        "required": ["client_id"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        client = await self._entities.get_client(
            params["user_id"], required_int(params, "client_id"),
        )
        if client is None:
            return {"error": CLIENT_NOT_FOUND}
        return client


# ---------------------------------------------------------------------------
# Folders / cases
# ---------------------------------------------------------------------------


class QueryFoldersTool(_EntityTool):
    name = "query_folders"
    description = (
        "Busca pastas/processos no sistema por título, número CNJ, cliente, tipo ou "
        "status. Use antes de get_folder_details para obter o ID real do processo."
    )
    parameters = {
        "type": "object",
        "properties": {
            "search": {"type": "string", "description": "Termo de busca (título, número CNJ, observação)"},
            "client_id": {"type": "number", "description": "ID do cliente para filtrar"},
            "folder_type_id": {
                "type": "number",
                "description": "ID do tipo de pasta (Cível, Trabalhista, Criminal, etc)",
            },
            "status": {
                "type": "string",
                "enum": ["active", "archived", "suspended", "concluded"],
                "description": "Status da pasta",
            },
            "limit": {
                "type": "number",
                "description": "Limite de resultados (padrão: 10, máximo: 50)",
                "default": 10,
            },
        },
        "required": [],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        folders = await self._entities.list_folders(
            params["user_id"],
            search=sanitize_search(params.get("search")),
            client_id=optional_int(params.get("client_id")),
            folder_type_id=optional_int(params.get("folder_type_id")),
            status=params.get("status"),
            limit=clamp_limit(params.get("limit"), 10, 50),
        )
        return {"total": len(folders), "folders": folders}


class GetFolderDetailsTool(_EntityTool):
    name = "get_folder_details"
    description = (
        "Obtém detalhes completos de uma pasta/processo pelo ID: cliente, partes, "
        "tribunal, valores e contagem de movimentações, documentos e tarefas."
    )
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID da pasta/processo"},
        },
        "required": ["folder_id"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        folder = await self._entities.get_folder(
            params["user_id"], required_int(params, "folder_id"),
        )
        if folder is None:
            return {"error": FOLDER_NOT_FOUND}
        return folder


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class QueryTasksTool(_EntityTool):
    name = "query_tasks"
    description = (
        "Busca tarefas no sistema por status, prioridade, pasta, responsável, tarefas "
        "atrasadas ou com vencimento próximo."
    )
    parameters = {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": ["pending", "in_progress", "completed", "cancelled"],
                "description": "Status da tarefa",
            },
            "priority": {
                "type": "string",
                "enum": ["low", "medium", "high", "urgent"],
                "description": "Prioridade da tarefa",
            },
            "folder_id": {"type": "number", "description": "ID da pasta/processo associado à tarefa"},
            "assigned_to_id": {"type": "number", "description": "ID do usuário responsável pela tarefa"},
            "overdue": {"type": "boolean", "description": "Buscar apenas tarefas atrasadas (prazo vencido)"},
            "upcoming_days": {
                "type": "number",
                "description": "Buscar tarefas com vencimento nos próximos X dias",
            },
            "limit": {
                "type": "number",
                "description": "Limite de resultados (padrão: 20, máximo: 50)",
                "default": 20,
            },
        },
        "required": [],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        tasks = await self._entities.list_tasks(
            params["user_id"],
            status=params.get("status"),
            priority=params.get("priority"),
            folder_id=optional_int(params.get("folder_id")),
            assigned_to_id=optional_int(params.get("assigned_to_id")),
            overdue=optional_bool(params.get("overdue")),
            upcoming_days=optional_int(params.get("upcoming_days")),
            limit=clamp_limit(params.get("limit"), 20, 50),
        )
        return {"total": len(tasks), "tasks": tasks}


# ---------------------------------------------------------------------------
# Folder movements & documents
# ---------------------------------------------------------------------------


class QueryFolderMovementsTool(_EntityTool):
    name = "query_folder_movements"
    description = (
        "Busca movimentações/andamentos de um processo: prazos, intimações, decisões. "
        "Filtra por período, necessidade de ação, prazo, urgência e resultado."
    )
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID da pasta/processo"},
            "days": {"type": "number", "description": "Buscar movimentações dos últimos X dias"},
            "requires_action": {"type": "boolean", "description": "Filtrar apenas movimentações que requerem ação"},
            "is_deadline": {"type": "boolean", "description": "Filtrar apenas movimentações com prazo"},
            "urgency_level": {
                "type": "string",
                "enum": ["low", "normal", "high", "urgent"],
                "description": "Nível de urgência da movimentação",
            },
            "is_favorable": {
                "type": "boolean",
                "description": "Filtrar movimentações favoráveis (true) ou desfavoráveis (false)",
            },
            "limit": {
                "type": "number",
                "description": "Limite de resultados (padrão: 20, máximo: 100)",
                "default": 20,
            },
        },
        "required": ["folder_id"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        user_id = params["user_id"]
        folder_id = required_int(params, "folder_id")
        if await self._entities.get_folder(user_id, folder_id) is None:
            return {"error": FOLDER_NOT_FOUND}

        movements = await self._entities.list_movements(
            user_id,
            folder_id,
            days=optional_int(params.get("days")),
            requires_action=optional_bool(params.get("requires_action")),
            is_deadline=optional_bool(params.get("is_deadline")),
            urgency_level=params.get("urgency_level"),
            is_favorable=optional_bool(params.get("is_favorable")),
            limit=clamp_limit(params.get("limit"), 20, 100),
        )
        return {"folder_id": folder_id, "total": len(movements), "movements": movements}


class QueryDocumentsTool(_EntityTool):
    name = "query_documents"
    description = "Lista documentos anexados a um processo, opcionalmente filtrando por tipo."
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID do processo/pasta"},
            "document_type": {
                "type": "string",
                "description": "Tipo do documento (ex: petition, contract, evidence, judgment, power_of_attorney)",
            },
            "limit": {
                "type": "number",
                "description": "Limite de resultados (padrão: 20, máximo: 100)",
                "default": 20,
            },
        },
        "required": ["folder_id"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        user_id = params["user_id"]
        folder_id = required_int(params, "folder_id")
        if await self._entities.get_folder(user_id, folder_id) is None:
            return {"error": FOLDER_NOT_FOUND}

        documents = await self._entities.list_documents(
            user_id,
            folder_id,
            document_type=params.get("document_type"),
            limit=clamp_limit(params.get("limit"), 20, 100),
        )
        return {"folder_id": folder_id, "total": len(documents), "documents": documents}


def entity_tools(entities: EntityRepository) -> list[Tool]:
    """The baseline tool set offered to every agent."""
    return [
        QueryClientsTool(entities),
        GetClientDetailsTool(entities),
        QueryFoldersTool(entities),
        GetFolderDetailsTool(entities),
        QueryTasksTool(entities),
        QueryFolderMovementsTool(entities),
        QueryDocumentsTool(entities),
    ]


BASELINE_TOOL_NAMES = [
    "query_clients",
    "get_client_details",
    "query_folders",
    "get_folder_details",
    "query_tasks",
    "query_folder_movements",
    "query_documents",
]
