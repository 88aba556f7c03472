"""Domain error taxonomy.

Services raise these; the HTTP layer maps them to a JSON body with the
status code carried by each class.
"""
from typing import Optional


class DomainError(Exception):
    status_code: int = 400
    code: str = "BadRequest"
    default_message: str = "Requisicao invalida"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None) -> None:
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"statusCode": self.status_code, "error": self.code, "message": self.message}


class InvalidInput(DomainError):
    status_code = 400
    code = "INVALID_INPUT"
    default_message = "Dados invalidos"


class NotFound(DomainError):
    status_code = 404
    code = "NotFound"
    default_message = "Registro nao encontrado"


class CompanyNotFound(NotFound):
    code = "COMPANY_NOT_FOUND"
    default_message = "Empresa nao encontrada"


class ClientNotFound(NotFound):
    code = "CLIENT_NOT_FOUND"
    default_message = "Cliente nao encontrado nesta empresa"


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"
    default_message = "Produto nao encontrado nesta empresa"


class QuoteNotFound(NotFound):
    code = "QUOTE_NOT_FOUND"
    default_message = "Orcamento nao encontrado nesta empresa"


class QuoteItemNotFound(NotFound):
    code = "QUOTE_ITEM_NOT_FOUND"
    default_message = "Item nao encontrado neste orcamento"


class ShareNotFound(NotFound):
    code = "SHARE_NOT_FOUND"
    default_message = "Registro de compartilhamento nao encontrado"


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"
    default_message = "Usuario nao encontrado"


class Forbidden(DomainError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Voce nao tem permissao para acessar esta empresa"


class CompanyInactive(DomainError):
    status_code = 403
    code = "CompanyInactive"
    default_message = "Esta empresa esta inativa"


class Conflict(DomainError):
    status_code = 409
    code = "Conflict"
    default_message = "Registro duplicado"


class PlanLimitExceeded(DomainError):
    status_code = 422
    code = "PLAN_LIMIT_EXCEEDED"
    default_message = "Limite do plano atingido"


class PlanFeatureNotAllowed(DomainError):
    status_code = 422
    code = "PLAN_FEATURE_NOT_ALLOWED"
    default_message = "Recurso nao disponivel no plano atual"


class QuoteNotEditable(DomainError):
    status_code = 422
    code = "QUOTE_NOT_EDITABLE"
    default_message = "Orcamentos aceitos ou faturados nao podem ser editados"


class QuoteNotDeletable(DomainError):
    status_code = 422
    code = "QUOTE_NOT_DELETABLE"
    default_message = "Orcamentos aceitos ou faturados nao podem ser excluidos"


class InvalidStatusTransition(DomainError):
    status_code = 422
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Transicao de status nao permitida"


class InternalError(DomainError):
    status_code = 500
    code = "InternalServerError"
    default_message = "Ocorreu um erro, tente novamente mais tarde"
