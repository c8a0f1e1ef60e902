"""Tests for the boto3 EventBridge backend, using botocore's Stubber."""

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.stub import Stubber

from rulepool.backends.eventbridge import EventBridgeBackend, translate_client_error
from rulepool.errors import BackendError, TransientBackendError
from rulepool.protocol import ContainerOutcome, RuleHandle

ACCOUNT = "arn:aws:events:us-east-1:000000000000"
FUNCTION_ARN = "arn:aws:lambda:us-east-1:000000000000:function:ett-dev-reminder"


@pytest.fixture
def clients():
    credentials = {
        "region_name": "us-east-1",
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
    }
    events = boto3.client("events", **credentials)
    lambda_ = boto3.client("lambda", **credentials)
    with Stubber(events) as events_stub, Stubber(lambda_) as lambda_stub:
        yield events, events_stub, lambda_, lambda_stub
        events_stub.assert_no_pending_responses()
        lambda_stub.assert_no_pending_responses()


@pytest.fixture
def backend(clients):
    events, _, lambda_, _ = clients
    return EventBridgeBackend(page_size=2, events_client=events, lambda_client=lambda_)


@pytest.fixture
def events_stub(clients):
    return clients[1]


@pytest.fixture
def lambda_stub(clients):
    return clients[3]


class TestListing:
    """Test paginated listings."""

    @pytest.mark.asyncio
    async def test_list_buses_follows_next_token(self, backend, events_stub):
        """All pages are read until NextToken runs out."""
        events_stub.add_response(
            "list_event_buses",
            {
                "EventBuses": [
                    {"Name": "ett-dev-1", "Arn": f"{ACCOUNT}:event-bus/ett-dev-1"},
                    {"Name": "ett-dev-2", "Arn": f"{ACCOUNT}:event-bus/ett-dev-2"},
                ],
                "NextToken": "page-2",
            },
            {"NamePrefix": "ett-dev-", "Limit": 2},
        )
        events_stub.add_response(
            "list_event_buses",
            {"EventBuses": [{"Name": "ett-dev-5", "Arn": f"{ACCOUNT}:event-bus/ett-dev-5"}]},
            {"NamePrefix": "ett-dev-", "Limit": 2, "NextToken": "page-2"},
        )

        buses = await backend.list_containers("ett-dev-")

        assert [bus.name for bus in buses] == ["ett-dev-1", "ett-dev-2", "ett-dev-5"]

    @pytest.mark.asyncio
    async def test_list_rules_on_default_bus_omits_bus_name(self, backend, events_stub):
        """The default bus is addressed by leaving EventBusName out."""
        events_stub.add_response(
            "list_rules",
            {
                "Rules": [
                    {
                        "Name": "ett-dev-0-rule-a",
                        "Arn": f"{ACCOUNT}:rule/ett-dev-0-rule-a",
                        "ScheduleExpression": "cron(0 1 2 3 ? 2030)",
                        "State": "ENABLED",
                    }
                ]
            },
            {"NamePrefix": "ett-dev-", "Limit": 2},
        )

        rules = await backend.list_rules("default", "ett-dev-")

        assert len(rules) == 1
        assert rules[0].bus_name == "default"
        assert rules[0].schedule_expression == "cron(0 1 2 3 ? 2030)"

    @pytest.mark.asyncio
    async def test_list_rules_on_pool_bus(self, backend, events_stub):
        """Pool buses are addressed by name."""
        events_stub.add_response(
            "list_rules",
            {"Rules": []},
            {"NamePrefix": "ett-dev-", "Limit": 2, "EventBusName": "ett-dev-3"},
        )

        assert await backend.list_rules("ett-dev-3", "ett-dev-") == []

    @pytest.mark.asyncio
    async def test_failed_page_aborts_listing(self, backend, events_stub):
        """A failing page fails the whole listing."""
        events_stub.add_response(
            "list_rules",
            {"Rules": [], "NextToken": "page-2"},
            {"NamePrefix": "ett-dev-", "Limit": 2, "EventBusName": "ett-dev-1"},
        )
        events_stub.add_client_error(
            "list_rules", service_error_code="ThrottlingException", http_status_code=400
        )

        with pytest.raises(TransientBackendError):
            await backend.list_rules("ett-dev-1", "ett-dev-")

    @pytest.mark.asyncio
    async def test_list_targets(self, backend, events_stub):
        """Targets are listed per rule."""
        events_stub.add_response(
            "list_targets_by_rule",
            {"Targets": [{"Id": "r-targetId", "Arn": FUNCTION_ARN, "Input": "{}"}]},
            {"Rule": "r", "Limit": 2, "EventBusName": "ett-dev-1"},
        )

        targets = await backend.list_targets("r", "ett-dev-1")

        assert targets[0].id == "r-targetId"
        assert targets[0].input == "{}"


class TestBuses:
    """Test bus create/delete outcomes."""

    @pytest.mark.asyncio
    async def test_create(self, backend, events_stub):
        """A new bus is created."""
        events_stub.add_response(
            "create_event_bus",
            {"EventBusArn": f"{ACCOUNT}:event-bus/ett-dev-1"},
            {"Name": "ett-dev-1"},
        )

        assert await backend.create_container("ett-dev-1") is ContainerOutcome.CREATED

    @pytest.mark.asyncio
    async def test_create_existing(self, backend, events_stub):
        """An existing bus is an outcome, not an error."""
        events_stub.add_client_error(
            "create_event_bus", service_error_code="ResourceAlreadyExistsException"
        )

        assert await backend.create_container("ett-dev-1") is ContainerOutcome.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_delete(self, backend, events_stub):
        """An empty bus is deleted."""
        events_stub.add_response("delete_event_bus", {}, {"Name": "ett-dev-1"})

        assert await backend.delete_container("ett-dev-1") is ContainerOutcome.DELETED

    @pytest.mark.asyncio
    async def test_delete_in_use(self, backend, events_stub):
        """A bus still holding rules is reported as in use."""
        events_stub.add_client_error("delete_event_bus", service_error_code="ResourceInUseException")

        assert await backend.delete_container("ett-dev-1") is ContainerOutcome.IN_USE

    @pytest.mark.asyncio
    async def test_delete_denied(self, backend, events_stub):
        """Permission errors propagate."""
        events_stub.add_client_error(
            "delete_event_bus", service_error_code="AccessDeniedException", http_status_code=403
        )

        with pytest.raises(BackendError) as exc_info:
            await backend.delete_container("ett-dev-1")

        assert not isinstance(exc_info.value, TransientBackendError)
        assert exc_info.value.context.error_code == "AccessDeniedException"
        assert exc_info.value.context.bus == "ett-dev-1"


class TestRules:
    """Test rule and target calls."""

    @pytest.mark.asyncio
    async def test_create_rule(self, backend, events_stub):
        """Rules are created enabled, on the named bus."""
        events_stub.add_response(
            "put_rule",
            {"RuleArn": f"{ACCOUNT}:rule/ett-dev-1/r"},
            {
                "Name": "r",
                "ScheduleExpression": "cron(0 9 4 7 ? 2030)",
                "State": "ENABLED",
                "EventBusName": "ett-dev-1",
                "Description": "reminder",
            },
        )

        handle = await backend.create_rule("ett-dev-1", "r", "cron(0 9 4 7 ? 2030)", "reminder")

        assert handle == RuleHandle(name="r", bus_name="ett-dev-1", arn=f"{ACCOUNT}:rule/ett-dev-1/r")

    @pytest.mark.asyncio
    async def test_create_rule_throttled(self, backend, events_stub):
        """Throttling maps to a retryable error."""
        events_stub.add_client_error("put_rule", service_error_code="ThrottlingException")

        with pytest.raises(TransientBackendError) as exc_info:
            await backend.create_rule("default", "r", "rate(1 day)")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_attach_target(self, backend, events_stub):
        """The target is attached with the serialized input."""
        events_stub.add_response(
            "put_targets",
            {"FailedEntryCount": 0, "FailedEntries": []},
            {
                "Rule": "r",
                "Targets": [{"Id": "r-targetId", "Arn": FUNCTION_ARN, "Input": '{"a":1}'}],
            },
        )

        await backend.attach_target("r", "default", "r-targetId", FUNCTION_ARN, '{"a":1}')

    @pytest.mark.asyncio
    async def test_attach_target_rejected(self, backend, events_stub):
        """Failed entries are raised."""
        events_stub.add_response(
            "put_targets",
            {
                "FailedEntryCount": 1,
                "FailedEntries": [
                    {"TargetId": "r-targetId", "ErrorCode": "ValidationException", "ErrorMessage": "bad"}
                ],
            },
        )

        with pytest.raises(BackendError) as exc_info:
            await backend.attach_target("r", "ett-dev-1", "r-targetId", FUNCTION_ARN, "{}")

        assert exc_info.value.context.error_code == "ValidationException"

    @pytest.mark.asyncio
    async def test_remove_targets_reports_failures(self, backend, events_stub):
        """Target ids that could not be removed are returned."""
        events_stub.add_response(
            "remove_targets",
            {"FailedEntryCount": 1, "FailedEntries": [{"TargetId": "t1"}]},
            {"Rule": "r", "Ids": ["t1"], "Force": True, "EventBusName": "ett-dev-1"},
        )

        assert await backend.remove_targets("r", "ett-dev-1", ["t1"]) == ["t1"]

    @pytest.mark.asyncio
    async def test_delete_rule(self, backend, events_stub):
        """Rules are force-deleted."""
        events_stub.add_response("delete_rule", {}, {"Name": "r", "Force": True})

        assert await backend.delete_rule("r", "default") is True

    @pytest.mark.asyncio
    async def test_delete_missing_rule(self, backend, events_stub):
        """A rule that is already gone is reported, not raised."""
        events_stub.add_client_error("delete_rule", service_error_code="ResourceNotFoundException")

        assert await backend.delete_rule("r", "ett-dev-1") is False


class TestInvokePermission:
    """Test Lambda invoke permission grants."""

    @pytest.mark.asyncio
    async def test_grant(self, backend, lambda_stub):
        """The events service may invoke the target for this rule."""
        rule = RuleHandle(name="r", bus_name="default", arn=f"{ACCOUNT}:rule/r")
        lambda_stub.add_response(
            "add_permission",
            {"Statement": "{}"},
            {
                "FunctionName": FUNCTION_ARN,
                "StatementId": "allow-eventbridge-invoke-r",
                "Action": "lambda:InvokeFunction",
                "Principal": "events.amazonaws.com",
                "SourceArn": rule.arn,
            },
        )

        await backend.grant_invoke_permission(FUNCTION_ARN, rule)

    @pytest.mark.asyncio
    async def test_grant_existing(self, backend, lambda_stub):
        """An existing statement is tolerated."""
        rule = RuleHandle(name="r", bus_name="default", arn=f"{ACCOUNT}:rule/r")
        lambda_stub.add_client_error("add_permission", service_error_code="ResourceConflictException")

        await backend.grant_invoke_permission(FUNCTION_ARN, rule)


class TestErrorTranslation:
    """Test botocore error mapping."""

    def test_server_errors_are_transient(self):
        """5xx responses are retryable whatever their code."""
        error = ClientError(
            {"Error": {"Code": "InternalError"}, "ResponseMetadata": {"HTTPStatusCode": 503}},
            "PutRule",
        )

        translated = translate_client_error(error, "put_rule", rule="r")

        assert isinstance(translated, TransientBackendError)
        assert translated.cause is error
        assert translated.context.rule == "r"

    def test_connection_errors_are_transient(self):
        """Network failures are retryable."""
        error = EndpointConnectionError(endpoint_url="https://events.us-east-1.amazonaws.com")

        translated = translate_client_error(error, "list_event_buses")

        assert isinstance(translated, TransientBackendError)
        assert translated.context.operation == "list_event_buses"
