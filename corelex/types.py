"""Typed dictionaries for CoreLex API objects and the tagged result type."""

from dataclasses import dataclass
from typing import Any, Generic, Literal, TypedDict, TypeVar

from .errors import CoreLexError

T = TypeVar("T")


class AgentConfiguration(TypedDict):
    prompt: str
    model: str


class _AgentBase(TypedDict):
    name: str
    description: str
    configuration: AgentConfiguration


class Agent(_AgentBase, total=False):
    id: str


class AgentUpdate(TypedDict, total=False):
    name: str
    description: str
    configuration: AgentConfiguration


class Pricing(TypedDict):
    pricing_type: Literal["per_call", "per_token"]
    price_amount: str
    payment_address: str


class _ServiceBase(TypedDict):
    name: str
    pricing: Pricing
    description: str
    endpoint: str
    input_schema: Any
    return_schema: Any


class Service(_ServiceBase, total=False):
    id: str


class ServiceUpdate(TypedDict, total=False):
    name: str
    pricing: Pricing
    description: str
    endpoint: str
    input_schema: Any
    return_schema: Any


class _AuthorizationBase(TypedDict):
    service_id: str
    signature: str


class Authorization(_AuthorizationBase, total=False):
    requester: str
    nonce: int
    issued_at: str


class AuthGrant(TypedDict, total=False):
    auth_token: str
    expires_in: float
    expires_at: str


class PaginationParams(TypedDict, total=False):
    page: int
    limit: int
    sortBy: str
    sortOrder: Literal["asc", "desc"]


class ServiceSearchParams(PaginationParams, total=False):
    q: str
    maxPrice: float


class InferenceUsage(TypedDict):
    promptTokens: int
    completionTokens: int
    totalTokens: int
    cost: str


class InferenceMetadata(TypedDict):
    timestamp: str
    latency: float


class AgentInferenceResponse(TypedDict):
    result: str
    usage: InferenceUsage
    metadata: InferenceMetadata


class AgentList(TypedDict):
    agents: list[Agent]


class ServiceList(TypedDict):
    services: list[Service]


class GeneratedAgentConfig(TypedDict):
    configuration: Agent


class APIErrorResponse(TypedDict, total=False):
    error: str
    details: Any
    kind: str
    status: int


@dataclass
class APIResponse(Generic[T]):
    """Tagged result: exactly one of ``data`` / ``error`` is meaningful."""

    data: T | None = None
    error: APIErrorResponse | None = None
    exception: CoreLexError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "APIResponse[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, exc: CoreLexError) -> "APIResponse[T]":
        return cls(error=exc.to_dict(), exception=exc)

    def unwrap(self) -> T:
        """Return ``data`` or raise the error this result carries."""
        if self.exception is not None:
            raise self.exception
        return self.data
