from typing import Optional


class CotacaoError(RuntimeError):
    status_code = 500
    message = "Erro interno do servidor"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(CotacaoError):
    status_code = 422
    message = "Dados invalidos"

    def __init__(self, errors: list[dict], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])


class AuthenticationError(CotacaoError):
    """Every authentication failure is reported to the caller with the same generic body."""

    status_code = 401
    message = "Credenciais invalidas"


class InvalidCredentials(AuthenticationError):
    pass


class InvalidToken(AuthenticationError):
    pass


class PrincipalNotFound(AuthenticationError):
    pass


class Forbidden(CotacaoError):
    status_code = 403
    message = "Acesso negado"


class NotFound(CotacaoError):
    status_code = 404
    message = "Registro nao encontrado"


class Conflict(CotacaoError):
    status_code = 409
    message = "Registro duplicado"


class PersistenceError(CotacaoError):
    status_code = 500
    message = "Erro interno do servidor"


class ExternalServiceFailure(CotacaoError):
    """Raised by outbound integrations; always absorbed before reaching the API caller."""

    status_code = 502
    message = "Falha em servico externo"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = status_code
