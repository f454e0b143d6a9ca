"""
Application-wide exception hierarchy.

Services raise these types; the app factory maps each family to an HTTP
status exactly once, so blueprints never translate errors themselves.

    ValidationError          → 400
    AuthenticationError      → 401
    AuthorizationError       → 403
    NotFoundError            → 404
    ConflictError            → 409
    UpstreamError            → 502
    IdentityConfigurationError → 500

Messages on the exception are user-facing (pt-BR). Internal detail goes to
the logs, never into ``str(exc)``.

Usage:
    from squads_virtuais.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Squad", resource_id=42)
    raise ValidationError("name é obrigatório", details={"name": "required"})
"""


class AppError(Exception):
    """Base class for every mapped application error."""

    status_code = 500
    code = "ERR_INTERNAL"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ── 400 ────────────────────────────────────────────────────────────────────


class ValidationError(AppError):
    """Input was well-formed JSON but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    status_code = 400
    code = "ERR_VALIDATION_INVALID"


class NoProblemStatement(ValidationError):
    """The squad has no problem statement to build a proposal from."""

    def __init__(self, squad_id: int | None = None) -> None:
        self.squad_id = squad_id
        super().__init__("A squad não possui Problem Statement")


# ── 401 ────────────────────────────────────────────────────────────────────


class AuthenticationError(AppError):
    status_code = 401
    code = "ERR_UNAUTHORIZED"


class InvalidSession(AuthenticationError):
    def __init__(self, message: str = "Token inválido ou expirado") -> None:
        super().__init__(message)


class InvalidCredential(AuthenticationError):
    """Provider credential is malformed, forged, expired or for another audience."""

    redirect_code = "github_auth_failed"

    def __init__(self, message: str = "Credencial inválida") -> None:
        super().__init__(message)


class EmailUnavailable(AuthenticationError):
    redirect_code = "github_email_missing"

    def __init__(self, message: str = "Não foi possível obter o email da conta") -> None:
        super().__init__(message)


class InvalidState(AuthenticationError):
    """OAuth state missing, expired or already consumed."""

    redirect_code = "github_invalid_state"

    def __init__(self, message: str = "Estado de autenticação inválido") -> None:
        super().__init__(message)


class AuthenticationFailed(AuthenticationError):
    """Identity could not be persisted. Detail stays in the logs."""

    redirect_code = "github_db_error"

    def __init__(self, message: str = "Falha ao autenticar") -> None:
        super().__init__(message)


# ── 403 ────────────────────────────────────────────────────────────────────


class AuthorizationError(AppError):
    status_code = 403
    code = "ERR_FORBIDDEN"

    def __init__(self, message: str = "Acesso negado") -> None:
        super().__init__(message)


# ── 404 ────────────────────────────────────────────────────────────────────


_RESOURCE_LABELS = {
    "User": "Usuário",
    "Workspace": "Workspace",
    "Squad": "Squad",
    "SquadMember": "Membro da squad",
    "ProblemStatement": "Problem Statement",
    "Role": "Papel",
    "WorkspaceRole": "Papel do workspace",
    "GlobalPersona": "Persona global",
    "Persona": "Persona",
    "SquadRole": "Papel da squad",
    "SquadPersona": "Persona da squad",
    "SquadMemberRole": "Atribuição de papel",
    "ValidationMatrixVersion": "Versão da matriz de validação",
    "AIStructureProposal": "Proposta",
    "Suggestion": "Sugestão",
    "GithubConnection": "Conexão GitHub",
    "Repository": "Repositório",
    "RepoConnection": "Repositório conectado",
}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Model name (e.g. "Squad", "Persona").
        resource_id: The PK that was looked up. Logged, not returned.
    """

    status_code = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        label = _RESOURCE_LABELS.get(resource, resource)
        super().__init__(f"{label} não encontrado(a)")

    def __repr__(self):
        return f"NotFoundError({self.resource!r}, {self.resource_id!r})"


# ── 409 ────────────────────────────────────────────────────────────────────


class ConflictError(AppError):
    """Raised when an operation collides with existing state (duplicates, terminal states)."""

    status_code = 409
    code = "ERR_CONFLICT_DUPLICATE"


class AlreadyResolved(ConflictError):
    code = "ERR_CONFLICT_STATE"

    def __init__(self, resource: str = "Sugestão", status: str | None = None) -> None:
        self.status = status
        msg = f"{resource} já foi resolvida"
        if status:
            msg += f" ({status})"
        super().__init__(msg)


class GithubReconnectRequired(ConflictError):
    """GitHub rejected the stored workspace token; the account must be connected again."""

    code = "ERR_CONFLICT_STATE"

    def __init__(self, message: str = "Token GitHub expirado ou revogado. Reconecte a conta.") -> None:
        super().__init__(message)


# ── 502 ────────────────────────────────────────────────────────────────────


class UpstreamError(AppError):
    """An external collaborator (identity provider, AI service) failed."""

    status_code = 502
    code = "ERR_UPSTREAM"


class OAuthExchangeFailed(UpstreamError):
    redirect_code = "github_token_exchange_failed"

    def __init__(self, message: str = "Falha ao trocar o código de autorização") -> None:
        super().__init__(message)


class UserFetchFailed(UpstreamError):
    redirect_code = "github_user_fetch_failed"

    def __init__(self, message: str = "Falha ao obter o perfil do provedor") -> None:
        super().__init__(message)


class GithubApiFailed(UpstreamError):
    def __init__(self, message: str = "Falha ao consultar o GitHub") -> None:
        super().__init__(message)


class ProposalGenerationFailed(UpstreamError):
    def __init__(self, message: str = "Falha ao gerar a proposta de estrutura") -> None:
        super().__init__(message)


# ── 500 ────────────────────────────────────────────────────────────────────


class IdentityConfigurationError(AppError):
    """Provider client id / secret missing at call time."""

    status_code = 500
    code = "ERR_CONFIGURATION"
    redirect_code = "github_config_error"

    def __init__(self, message: str = "Autenticação não configurada") -> None:
        super().__init__(message)
