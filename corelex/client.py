"""High-level CoreLex client for the agent and service marketplace API."""

import json
import logging
import time
from typing import Any, Callable
from urllib.parse import quote

from .authorization import AuthorizationBroker
from .config import ClientConfig
from .envelope import Envelope, EnvelopeBuilder
from .errors import APIError, AuthorizationError, CoreLexError, EncodingError
from .identity import Identity
from .transport import HTTPRequest, HTTPResponse, RequestsTransport, Transport
from .types import (
    Agent,
    AgentInferenceResponse,
    AgentList,
    AgentUpdate,
    APIResponse,
    AuthGrant,
    Authorization,
    GeneratedAgentConfig,
    PaginationParams,
    Service,
    ServiceList,
    ServiceSearchParams,
    ServiceUpdate,
)

_LOG = logging.getLogger(__name__)

PAGINATION_FIELDS = frozenset({"page", "limit", "sortBy", "sortOrder"})
SEARCH_FIELDS = PAGINATION_FIELDS | {"q", "maxPrice"}
SORT_ORDERS = frozenset({"asc", "desc"})

# Server error codes meaning "your auth token is no longer good".
TOKEN_REJECTION_CODES = frozenset({"token_expired", "token_invalid", "invalid_token", "unauthorized"})


def _segment(value: str, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise EncodingError(f"{name} must be a non-empty string")
    return quote(value, safe="")


def _query(params: dict | None, allowed: frozenset) -> dict | None:
    if params is None:
        return None
    query = {k: v for k, v in dict(params).items() if v is not None}
    unknown = set(query) - allowed
    if unknown:
        raise EncodingError(f"Unsupported query parameters: {sorted(unknown)}")
    if "sortOrder" in query and query["sortOrder"] not in SORT_ORDERS:
        raise EncodingError(f"sortOrder must be one of {sorted(SORT_ORDERS)}")
    return query or None


def _is_token_rejection(error: APIError) -> bool:
    if error.status == 401:
        return True
    return error.message.strip().lower() in TOKEN_REJECTION_CODES


def decode_response(response: HTTPResponse) -> Any:
    """Unpack a ``{data?, error?}`` response envelope.

    Returns:
        The ``data`` member (``None`` for empty success bodies).

    Raises:
        APIError: For ``error`` bodies, HTTP error statuses and malformed JSON.
    """
    status = response.status_code
    if not response.body:
        if status >= 400:
            raise APIError(f"HTTP {status}", status=status)
        return None
    try:
        payload = json.loads(response.body)
    except ValueError:
        raise APIError(
            f"Invalid JSON response (HTTP {status})",
            details=response.body[:200].decode("utf-8", "replace"),
            status=status,
        ) from None
    if not isinstance(payload, dict):
        raise APIError(f"Malformed response envelope (HTTP {status})", details=payload, status=status)

    error = payload.get("error")
    if error is not None:
        if isinstance(error, dict):
            raise APIError(str(error.get("error", "Unknown error")), details=error.get("details"), status=status)
        raise APIError(str(error), status=status)
    if status >= 400:
        raise APIError(f"HTTP {status}", status=status)
    return payload.get("data")


class CoreLexClient:
    """Client for the CoreLex marketplace API.

    Every operation is a coroutine returning an :class:`APIResponse`; local
    and server failures are reported on the result rather than raised.
    Construction fails with :class:`IdentityError` when no usable key is
    configured.

    Usage::

        async with CoreLexClient(ClientConfig(base_url=url, private_key=key)) as client:
            result = await client.infer_agent("agent-1", "hello", "thread-1")
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        identity: Identity | None = None,
        transport: Transport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._identity = identity if identity is not None else config.load_identity()
        self._transport = transport if transport is not None else RequestsTransport(timeout=config.timeout)
        self._broker = AuthorizationBroker(
            self._identity,
            self._submit_authorization,
            authorization_timeout=config.authorization_timeout,
            default_token_ttl=config.default_token_ttl,
            token_refresh_margin=config.token_refresh_margin,
            clock=clock,
        )
        self._builder = EnvelopeBuilder(self._identity, self._broker)

    @classmethod
    def from_env(cls, **overrides) -> "CoreLexClient":
        """Build a client from ``CORELEX_*`` environment variables."""
        return cls(ClientConfig.from_env(**overrides))

    async def __aenter__(self) -> "CoreLexClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    @property
    def public_key(self) -> str:
        """Base64-encoded public key of this client's identity."""
        return self._identity.public_key_base64

    @property
    def broker(self) -> AuthorizationBroker:
        return self._broker

    # -- agents --

    async def create_agent(self, agent: Agent) -> APIResponse[Agent]:
        """Register a new agent owned by this identity.

        Returns:
            The created agent, including its server-assigned id.
        """
        return await self._call("POST", "/agents", body=dict(agent))

    async def get_agent(self, agent_id: str) -> APIResponse[Agent]:
        """Fetch an agent by id.

        Returns:
            The agent record.
        """
        return await self._call("GET", "/agents/{agent_id}", agent_id=agent_id)

    async def update_agent(self, agent_id: str, update: AgentUpdate) -> APIResponse[Agent]:
        """Apply a partial update to an agent.

        Returns:
            The updated agent record.
        """
        return await self._call("PATCH", "/agents/{agent_id}", agent_id=agent_id, body=dict(update))

    async def delete_agent(self, agent_id: str) -> APIResponse[None]:
        """Delete an agent.

        Returns:
            An empty success result.
        """
        return await self._call("DELETE", "/agents/{agent_id}", agent_id=agent_id)

    async def list_my_agents(self, params: PaginationParams | None = None) -> APIResponse[AgentList]:
        """List agents owned by this identity. Given *params* are signed.

        Returns:
            A page of agents.
        """
        return await self._call("GET", "/agents", query=(params, PAGINATION_FIELDS))

    async def generate_agent_config(self, specification: str) -> APIResponse[GeneratedAgentConfig]:
        """Ask the server to draft an agent configuration from a description.

        Returns:
            The generated configuration.
        """
        return await self._call("POST", "/agents/config", body={"specification": specification})

    async def infer_agent(
        self,
        agent_id: str,
        input: str,
        thread_id: str,
        service_id: str | None = None,
    ) -> APIResponse[AgentInferenceResponse]:
        """Run inference on a paid agent.

        The call is authorized against *service_id*, which defaults to the
        agent id.

        Returns:
            The inference result with usage and metadata.
        """
        return await self._call(
            "POST",
            "/agents/{agent_id}/infer",
            agent_id=agent_id,
            body={"input": input, "threadId": thread_id},
            target_service_id=service_id or agent_id,
        )

    # -- services --

    async def create_service(self, service: Service) -> APIResponse[Service]:
        """Publish a new service.

        Returns:
            The created service, including its server-assigned id.
        """
        return await self._call("POST", "/services", body=dict(service))

    async def get_service(self, service_id: str) -> APIResponse[Service]:
        """Fetch a service by id.

        Returns:
            The service record.
        """
        return await self._call("GET", "/services/{service_id}", service_id=service_id)

    async def update_service(self, service_id: str, update: ServiceUpdate) -> APIResponse[Service]:
        """Apply a partial update to a service.

        Returns:
            The updated service record.
        """
        return await self._call("PATCH", "/services/{service_id}", service_id=service_id, body=dict(update))

    async def search_services(self, params: ServiceSearchParams | None = None) -> APIResponse[ServiceList]:
        """Search published services. Given *params* are signed.

        Returns:
            A page of matching services.
        """
        return await self._call("GET", "/services", query=(params, SEARCH_FIELDS))

    async def invoke_service(self, service_id: str, payload: dict) -> APIResponse[Any]:
        """Call a paid service directly with its own input payload.

        Returns:
            Whatever the service returns as ``data``.
        """
        return await self._call(
            "POST",
            "/services/{service_id}/invoke",
            service_id=service_id,
            body=dict(payload),
            target_service_id=service_id,
        )

    async def authorize_service(
        self, service_id: str, authorization: Authorization | None = None
    ) -> APIResponse[AuthGrant]:
        """Exchange a signed authorization for an auth token.

        Without *authorization*, a fresh claim is built and signed. A granted
        token is cached so later paid calls to *service_id* reuse it.

        Returns:
            The grant carrying ``auth_token`` and its expiry.
        """
        try:
            if authorization is None:
                authorization = self._broker.build_authorization(service_id)
            elif authorization.get("service_id") != service_id:
                raise AuthorizationError(
                    f"Authorization is for service {authorization.get('service_id')!r}, "
                    f"not {service_id!r}"
                )
            grant = await self._submit_authorization(authorization)
            if isinstance(grant, dict) and grant.get("auth_token"):
                self._broker.accept_grant(service_id, grant)
        except CoreLexError as e:
            return APIResponse.failure(e)
        return APIResponse.success(grant)

    # -- internal helpers --

    async def _submit_authorization(self, authorization: Authorization) -> AuthGrant:
        envelope = await self._builder.build("POST", "/services/authorize", dict(authorization))
        try:
            return await self._send(envelope)
        except APIError as e:
            raise AuthorizationError(e.message, details=e.details, status=e.status) from e

    async def _send(self, envelope: Envelope) -> Any:
        request = HTTPRequest(
            method=envelope.method,
            url=f"{self._config.base_url}{envelope.path}",
            headers=envelope.headers(),
            body=envelope.encoded_body(),
            params=envelope.query,
        )
        response = await self._transport.send(request)
        return decode_response(response)

    async def _call(
        self,
        method: str,
        template: str,
        *,
        body: dict | None = None,
        query: tuple | None = None,
        target_service_id: str | None = None,
        **path_ids: str,
    ) -> APIResponse:
        try:
            path = template.format(
                **{name: _segment(value, name) for name, value in path_ids.items()}
            )
            params = _query(*query) if query is not None else None
            data = await self._execute(method, path, body, params, target_service_id)
        except CoreLexError as e:
            _LOG.debug("%s %s failed: %s", method, template, e.kind)
            return APIResponse.failure(e)
        return APIResponse.success(data)

    async def _execute(
        self,
        method: str,
        path: str,
        body: dict | None,
        params: dict | None,
        target_service_id: str | None,
    ) -> Any:
        # Paid calls get one re-authorization after a token rejection.
        attempts = 2 if target_service_id is not None else 1
        for attempt in range(1, attempts + 1):
            envelope = await self._builder.build(
                method, path, body, target_service_id=target_service_id, query=params
            )
            try:
                return await self._send(envelope)
            except APIError as e:
                if target_service_id is None or not _is_token_rejection(e):
                    raise
                self._broker.invalidate(target_service_id, envelope.auth_token)
                if attempt == attempts:
                    raise AuthorizationError(
                        f"Auth token for service {target_service_id} rejected: {e.message}",
                        details=e.details,
                        status=e.status,
                    ) from e
                _LOG.info("auth token rejected service=%s; re-authorizing once", target_service_id)
