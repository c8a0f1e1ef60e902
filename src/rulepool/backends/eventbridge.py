"""AWS EventBridge scheduling backend.

Buses and rules live in EventBridge; the compute target is a Lambda function.
boto3 clients are synchronous, so each call runs in a worker thread via
``asyncio.to_thread`` and the pool's control loop stays async.

Error mapping (botocore ``ClientError`` → pool semantics)::

    ResourceAlreadyExistsException (create_event_bus) → ContainerOutcome.ALREADY_EXISTS
    ResourceInUseException         (delete_event_bus) → ContainerOutcome.IN_USE
    ResourceNotFoundException      (delete_rule)      → False
    ResourceConflictException      (add_permission)   → logged, already granted
    Throttling / 5xx / connection errors              → TransientBackendError
    anything else                                     → BackendError

Example:
    >>> backend = EventBridgeBackend(region="us-east-2", page_size=10)
    >>> await backend.list_containers("ett-dev-")
    [ContainerSummary(name='ett-dev-1', arn='arn:aws:events:...')]
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from rulepool.errors import BackendError, TransientBackendError
from rulepool.logging import get_logger
from rulepool.protocol import (
    ContainerOutcome,
    ContainerSummary,
    RuleHandle,
    RuleSummary,
    TargetSummary,
    backend_bus_name,
)

logger = get_logger(__name__)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "ConcurrentModificationException",
        "InternalException",
        "InternalFailure",
        "ServiceUnavailable",
        "ServiceUnavailableException",
    }
)

_CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def translate_client_error(error: Exception, operation: str, **context: Any) -> BackendError:
    """Wrap a botocore exception in the pool's error taxonomy."""
    if isinstance(error, _CONNECTION_ERRORS):
        return TransientBackendError(
            f"{operation} failed to reach EventBridge: {error}", cause=error
        ).with_context(operation=operation, **context)

    code = error_code(error) if isinstance(error, ClientError) else ""
    status = (
        error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if isinstance(error, ClientError)
        else 0
    )
    error_class = (
        TransientBackendError
        if code in TRANSIENT_ERROR_CODES or status >= 500
        else BackendError
    )
    return error_class(f"{operation} failed: {error}", cause=error).with_context(
        operation=operation, error_code=code or None, **context
    )


def _bus_kwargs(container_name: str) -> dict[str, str]:
    bus = backend_bus_name(container_name)
    return {"EventBusName": bus} if bus else {}


class EventBridgeBackend:
    """``SchedulingBackend`` over boto3 ``events`` and ``lambda`` clients.

    Args:
        region: AWS region of the buses
        page_size: ``Limit`` passed to list calls
        events_client: Pre-built events client (tests, custom sessions)
        lambda_client: Pre-built lambda client
        endpoint_url: Custom endpoint (LocalStack)
    """

    name = "eventbridge"

    def __init__(
        self,
        region: str = "us-east-1",
        page_size: int = 10,
        *,
        events_client: Any = None,
        lambda_client: Any = None,
        endpoint_url: str | None = None,
    ) -> None:
        self.region = region
        self.page_size = page_size

        client_kwargs: dict[str, Any] = {
            "region_name": region,
            "config": Config(retries={"mode": "standard", "max_attempts": 1}),
        }
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.events = events_client or boto3.client("events", **client_kwargs)
        self.lambda_ = lambda_client or boto3.client("lambda", **client_kwargs)

        logger.debug("eventbridge_backend_initialized", region=region, endpoint=endpoint_url)

    async def _run(self, operation: str, func: Callable[[], Any], **context: Any) -> Any:
        try:
            return await asyncio.to_thread(func)
        except (ClientError, *_CONNECTION_ERRORS) as e:
            raise translate_client_error(e, operation, **context) from e

    def _paginate(self, call: Callable[..., dict], items_key: str, **params: Any) -> list[dict]:
        """Follow NextToken until exhausted. Any failing page aborts the listing."""
        items: list[dict] = []
        token: str | None = None
        while True:
            request = dict(params, Limit=self.page_size)
            if token:
                request["NextToken"] = token
            logger.debug(
                "listing_page",
                call=call.__name__,
                page="next" if token else "first",
                page_size=self.page_size,
            )
            response = call(**request)
            items.extend(response.get(items_key, []))
            token = response.get("NextToken")
            if not token:
                return items

    # === Buses ===

    async def list_containers(self, name_prefix: str) -> list[ContainerSummary]:
        buses = await self._run(
            "list_event_buses",
            lambda: self._paginate(self.events.list_event_buses, "EventBuses", NamePrefix=name_prefix),
        )
        return [ContainerSummary(name=bus["Name"], arn=bus.get("Arn")) for bus in buses]

    async def list_rules(self, container_name: str, name_prefix: str) -> list[RuleSummary]:
        rules = await self._run(
            "list_rules",
            lambda: self._paginate(
                self.events.list_rules,
                "Rules",
                NamePrefix=name_prefix,
                **_bus_kwargs(container_name),
            ),
            bus=container_name,
        )
        return [
            RuleSummary(
                name=rule["Name"],
                bus_name=container_name,
                schedule_expression=rule.get("ScheduleExpression"),
                description=rule.get("Description"),
                arn=rule.get("Arn"),
                state=rule.get("State"),
            )
            for rule in rules
        ]

    async def create_container(self, name: str) -> ContainerOutcome:
        try:
            await asyncio.to_thread(self.events.create_event_bus, Name=name)
        except ClientError as e:
            if error_code(e) == "ResourceAlreadyExistsException":
                return ContainerOutcome.ALREADY_EXISTS
            raise translate_client_error(e, "create_event_bus", bus=name) from e
        except _CONNECTION_ERRORS as e:
            raise translate_client_error(e, "create_event_bus", bus=name) from e
        return ContainerOutcome.CREATED

    async def delete_container(self, name: str) -> ContainerOutcome:
        try:
            await asyncio.to_thread(self.events.delete_event_bus, Name=name)
        except ClientError as e:
            if error_code(e) == "ResourceInUseException":
                return ContainerOutcome.IN_USE
            raise translate_client_error(e, "delete_event_bus", bus=name) from e
        except _CONNECTION_ERRORS as e:
            raise translate_client_error(e, "delete_event_bus", bus=name) from e
        return ContainerOutcome.DELETED

    # === Rules ===

    async def create_rule(
        self,
        container_name: str,
        name: str,
        schedule_expression: str,
        description: str | None = None,
    ) -> RuleHandle:
        params: dict[str, Any] = {
            "Name": name,
            "ScheduleExpression": schedule_expression,
            "State": "ENABLED",
            **_bus_kwargs(container_name),
        }
        if description:
            params["Description"] = description
        response = await self._run(
            "put_rule", lambda: self.events.put_rule(**params), bus=container_name, rule=name
        )
        return RuleHandle(name=name, bus_name=container_name, arn=response["RuleArn"])

    async def attach_target(
        self,
        rule_name: str,
        container_name: str,
        target_id: str,
        target_arn: str,
        payload: str,
    ) -> None:
        response = await self._run(
            "put_targets",
            lambda: self.events.put_targets(
                Rule=rule_name,
                Targets=[{"Id": target_id, "Arn": target_arn, "Input": payload}],
                **_bus_kwargs(container_name),
            ),
            bus=container_name,
            rule=rule_name,
        )
        if response.get("FailedEntryCount", 0):
            entry = response["FailedEntries"][0]
            raise BackendError(
                f"put_targets rejected target {target_id}: {entry.get('ErrorMessage')}"
            ).with_context(
                operation="put_targets",
                bus=container_name,
                rule=rule_name,
                error_code=entry.get("ErrorCode"),
            )

    async def grant_invoke_permission(self, target_arn: str, rule: RuleHandle) -> None:
        try:
            await asyncio.to_thread(
                self.lambda_.add_permission,
                FunctionName=target_arn,
                StatementId=f"allow-eventbridge-invoke-{rule.name}"[:100],
                Action="lambda:InvokeFunction",
                Principal="events.amazonaws.com",
                SourceArn=rule.arn,
            )
        except ClientError as e:
            if error_code(e) == "ResourceConflictException":
                logger.warning("invoke_permission_exists", function=target_arn, rule=rule.name)
                return
            raise translate_client_error(e, "add_permission", rule=rule.name) from e
        except _CONNECTION_ERRORS as e:
            raise translate_client_error(e, "add_permission", rule=rule.name) from e

    async def list_targets(self, rule_name: str, container_name: str) -> list[TargetSummary]:
        targets = await self._run(
            "list_targets_by_rule",
            lambda: self._paginate(
                self.events.list_targets_by_rule,
                "Targets",
                Rule=rule_name,
                **_bus_kwargs(container_name),
            ),
            bus=container_name,
            rule=rule_name,
        )
        return [
            TargetSummary(id=target["Id"], arn=target["Arn"], input=target.get("Input"))
            for target in targets
        ]

    async def remove_targets(
        self, rule_name: str, container_name: str, target_ids: list[str]
    ) -> list[str]:
        response = await self._run(
            "remove_targets",
            lambda: self.events.remove_targets(
                Rule=rule_name, Ids=target_ids, Force=True, **_bus_kwargs(container_name)
            ),
            bus=container_name,
            rule=rule_name,
        )
        return [entry.get("TargetId", "") for entry in response.get("FailedEntries", [])]

    async def delete_rule(self, rule_name: str, container_name: str) -> bool:
        try:
            await asyncio.to_thread(
                self.events.delete_rule,
                Name=rule_name,
                Force=True,
                **_bus_kwargs(container_name),
            )
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException":
                return False
            raise translate_client_error(e, "delete_rule", bus=container_name, rule=rule_name) from e
        except _CONNECTION_ERRORS as e:
            raise translate_client_error(e, "delete_rule", bus=container_name, rule=rule_name) from e
        return True
